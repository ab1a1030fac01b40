"""Execution backends: JIT kernels and the tile thread pool."""
