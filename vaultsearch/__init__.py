"""Semantic search over a vault of markdown notes."""
