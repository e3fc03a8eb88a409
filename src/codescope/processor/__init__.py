"""Indexing and search pipeline components."""
