"""Command-line tools for LinkForge.

- ``python -m linkforge.cli.ingest`` -- enqueue links and documents, inspect
  and repair the queue, run workers, set up the Neo4j schema.
- ``python -m linkforge.cli.search`` -- hybrid link search and passage search.

Both use argparse and construct their own dependencies, deferring heavy
imports (Neo4j driver, embedding model) to the commands that need them.
"""
