"""Semantic search over the index."""
