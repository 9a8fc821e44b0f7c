"""Semantic indexing pipeline components.

This package contains modules for:
- Text cleaning and section extraction
- Input and embedding cache tables
- Incremental, batched embedding generation
- Cosine-similarity retrieval
- Cost estimation
"""
