"""Indexing orchestration: full runs, single-file updates, debounced triggers."""
