"""Core data types and the escape-time kernel."""
