"""Graph store backends.  Neo4jGraphStore implements IGraphStore on Neo4j 5."""
