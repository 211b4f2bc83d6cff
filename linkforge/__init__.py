"""LinkForge: a link ingestion queue and hybrid retrieval over a Neo4j knowledge graph."""

__version__ = "0.1.0"
