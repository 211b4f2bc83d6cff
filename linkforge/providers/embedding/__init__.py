"""Embedding providers.

SentenceTransformerEmbeddingProvider runs a local model (all-MiniLM-L6-v2 by
default, 384 dimensions).  Its dimension must match the Neo4j vector indexes.
"""
