"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Text extraction from uploaded files
- Sentence-based chunking
- Passage storage
- Embedding indexing
- Cosine similarity ranking and retrieval with fallback
"""
