"""Color mapping of iteration counts."""
