"""Neo4j-backed graph store.

Graph layout::

    (:Link {url})-[:CATEGORIZED_IN]->(:Category {name})
    (:Link)-[:TAGGED_WITH]->(:Tag {name})
    (:Link)-[:HAS_CHUNK]->(:Chunk {id, text, index, embedding})
    (:Link)-[:LINKS_TO]->(:Link)
    (:Link)-[:SHARED_BY]->(:User {name})

Links and chunks carry 384-dimensional embeddings indexed by two native
cosine vector indexes, ``link_embedding_idx`` and ``chunk_embedding_idx``.
Node properties keep the camelCase names already used in existing graphs
(``forgeScore``, ``contentType``, ``savedAt``...); this module is the only
place that knows them.

All queries go through the async driver's ``execute_query`` with explicit
read/write routing.  Every record is mapped to a model from
:mod:`linkforge.models.graph` before it leaves this module, and every
driver error is re-raised as :class:`GraphStoreError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase, RoutingControl
from neo4j.exceptions import Neo4jError, ServiceUnavailable

from linkforge.interfaces.graph_store import IGraphStore
from linkforge.models.graph import (
    CHUNK_EMBEDDING_INDEX,
    DEFAULT_CONTENT_TYPE,
    EMBEDDING_DIMENSION,
    LINK_EMBEDDING_INDEX,
    ChunkHit,
    ChunkNode,
    KeywordHit,
    LinkContext,
    LinkNode,
    VectorHit,
)
from linkforge.utils.errors import GraphStoreError

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER_NAME = "neo4j"

_CONSTRAINTS = [
    "CREATE CONSTRAINT link_url_unique IF NOT EXISTS FOR (l:Link) REQUIRE l.url IS UNIQUE",
    "CREATE CONSTRAINT category_name_unique IF NOT EXISTS FOR (c:Category) REQUIRE c.name IS UNIQUE",
    "CREATE CONSTRAINT tag_name_unique IF NOT EXISTS FOR (t:Tag) REQUIRE t.name IS UNIQUE",
    "CREATE CONSTRAINT chunk_id_unique IF NOT EXISTS FOR (ch:Chunk) REQUIRE ch.id IS UNIQUE",
    "CREATE CONSTRAINT user_name_unique IF NOT EXISTS FOR (u:User) REQUIRE u.name IS UNIQUE",
]

_TEXT_INDEXES = [
    "CREATE INDEX link_title_idx IF NOT EXISTS FOR (l:Link) ON (l.title)",
    "CREATE INDEX link_description_idx IF NOT EXISTS FOR (l:Link) ON (l.description)",
]

# Index name and dimension are interpolated: Neo4j does not accept
# parameters in schema commands.  Both come from module constants/config.
_VECTOR_INDEX_TEMPLATE = """\
CREATE VECTOR INDEX {name} IF NOT EXISTS
FOR (n:{label}) ON (n.embedding)
OPTIONS {{indexConfig: {{`vector.dimensions`: {dimension}, `vector.similarity_function`: 'cosine'}}}}"""

_VECTOR_INDEX_LABELS = {
    LINK_EMBEDDING_INDEX: "Link",
    CHUNK_EMBEDDING_INDEX: "Chunk",
}

_VECTOR_SEARCH_CYPHER = """\
CALL db.index.vector.queryNodes($index_name, $limit, $embedding)
YIELD node, score
RETURN node {.*, embedding: null} AS node, score
ORDER BY score DESC"""

_KEYWORD_SEARCH_CYPHER = """\
MATCH (l:Link)
WHERE toLower(l.title) CONTAINS toLower($query)
   OR toLower(l.description) CONTAINS toLower($query)
OPTIONAL MATCH (l)-[:CATEGORIZED_IN]->(c:Category)
OPTIONAL MATCH (l)-[:TAGGED_WITH]->(t:Tag)
WITH l, c.name AS category_name, collect(DISTINCT t.name) AS tags
RETURN l {.*, embedding: null} AS node, category_name, tags
LIMIT $limit"""

_CHUNK_SEARCH_CYPHER = """\
CALL db.index.vector.queryNodes('chunk_embedding_idx', $limit, $embedding)
YIELD node AS chunk, score
MATCH (link:Link)-[:HAS_CHUNK]->(chunk)
RETURN link.url AS link_url,
       link.title AS link_title,
       COALESCE(link.forgeScore, 0.0) AS forge_score,
       COALESCE(link.contentType, 'reference') AS content_type,
       chunk.text AS chunk_text,
       chunk.index AS chunk_index,
       score
ORDER BY score DESC"""

_UPSERT_LINK_CYPHER = """\
MERGE (l:Link {url: $url})
SET l.title = $title,
    l.description = $description,
    l.content = $content,
    l.embedding = $embedding,
    l.domain = $domain,
    l.savedAt = $saved_at,
    l.forgeScore = $forge_score,
    l.contentType = $content_type,
    l.purpose = $purpose,
    l.quality = $quality,
    l.keyConcepts = $key_concepts"""

_UPSERT_CHUNKS_CYPHER = """\
MATCH (l:Link {url: $link_url})
UNWIND $chunks AS row
MERGE (ch:Chunk {id: row.id})
SET ch.text = row.text,
    ch.index = row.index,
    ch.embedding = row.embedding
MERGE (l)-[:HAS_CHUNK]->(ch)"""

_DELETE_STALE_CHUNKS_CYPHER = """\
MATCH (l:Link {url: $link_url})-[:HAS_CHUNK]->(ch:Chunk)
WHERE NOT ch.id IN $keep_ids
DETACH DELETE ch"""

_CATEGORIZE_CYPHER = """\
MATCH (l:Link {url: $url})
OPTIONAL MATCH (l)-[old:CATEGORIZED_IN]->(:Category)
DELETE old
WITH DISTINCT l
MERGE (c:Category {name: $category})
MERGE (l)-[:CATEGORIZED_IN]->(c)"""

_TAG_CYPHER = """\
MATCH (l:Link {url: $url})
UNWIND $tags AS tag_name
MERGE (t:Tag {name: tag_name})
MERGE (l)-[:TAGGED_WITH]->(t)"""

_LINKS_TO_CYPHER = """\
MATCH (src:Link {url: $from_url})
MATCH (dst:Link {url: $to_url})
MERGE (src)-[:LINKS_TO]->(dst)"""

_SHARED_BY_CYPHER = """\
MATCH (l:Link {url: $url})
MERGE (u:User {name: $user})
MERGE (l)-[:SHARED_BY]->(u)"""

_LINK_CONTEXT_CYPHER = """\
UNWIND $urls AS url
MATCH (l:Link {url: url})
OPTIONAL MATCH (l)-[:CATEGORIZED_IN]->(c:Category)
OPTIONAL MATCH (l)-[:TAGGED_WITH]->(t:Tag)
OPTIONAL MATCH (l)-[:SHARED_BY]->(u:User)
RETURN l.url AS url,
       l.title AS title,
       l.description AS description,
       l.purpose AS purpose,
       l.forgeScore AS forge_score,
       l.contentType AS content_type,
       collect(DISTINCT c.name) AS categories,
       collect(DISTINCT t.name) AS tags,
       collect(DISTINCT u.name) AS shared_by"""

_LINK_EXISTS_CYPHER = "MATCH (l:Link {url: $url}) RETURN count(l) > 0 AS exists"
_COUNT_LINKS_CYPHER = "MATCH (l:Link) RETURN count(l) AS count"


# ---------------------------------------------------------------------------
# Record mapping
# ---------------------------------------------------------------------------

def _native_datetime(value: Any) -> datetime | str | None:
    # neo4j.time.DateTime exposes to_native(); ISO strings are parsed by pydantic.
    if value is None:
        return None
    to_native = getattr(value, "to_native", None)
    return to_native() if callable(to_native) else value


def link_from_properties(props: Mapping[str, Any]) -> LinkNode:
    """Map Link node properties to a :class:`LinkNode`."""
    return LinkNode(
        url=props["url"],
        title=props.get("title") or "",
        description=props.get("description") or "",
        content=props.get("content") or "",
        embedding=list(props.get("embedding") or []),
        domain=props.get("domain") or "",
        saved_at=_native_datetime(props.get("savedAt")),
        forge_score=props.get("forgeScore"),
        content_type=props.get("contentType"),
        purpose=props.get("purpose"),
        quality=props.get("quality"),
        key_concepts=list(props.get("keyConcepts") or []),
    )


def link_to_parameters(link: LinkNode) -> dict[str, Any]:
    """Map a :class:`LinkNode` to the parameters of the upsert query."""
    return {
        "url": link.url,
        "title": link.title,
        "description": link.description,
        "content": link.content,
        "embedding": list(link.embedding),
        "domain": link.domain,
        "saved_at": link.saved_at.isoformat() if link.saved_at else None,
        "forge_score": link.forge_score,
        "content_type": link.content_type,
        "purpose": link.purpose,
        "quality": link.quality,
        "key_concepts": list(link.key_concepts),
    }


class Neo4jGraphStore(IGraphStore):
    """Graph store backed by a Neo4j 5 database.

    Parameters
    ----------
    driver:
        An async driver.  Use :meth:`from_credentials` to build one.
    database:
        Target database name.
    dimension:
        Embedding dimension for the vector indexes.
    """

    def __init__(
        self,
        driver: AsyncDriver,
        database: str = "neo4j",
        dimension: int = EMBEDDING_DIMENSION,
    ) -> None:
        self._driver = driver
        self._database = database
        self._dimension = dimension

    @classmethod
    def from_credentials(
        cls,
        uri: str,
        user: str,
        password: str,
        database: str = "neo4j",
        dimension: int = EMBEDDING_DIMENSION,
    ) -> Neo4jGraphStore:
        driver = AsyncGraphDatabase.driver(uri, auth=(user, password))
        logger.info("neo4j_driver_created", uri=uri, database=database)
        return cls(driver, database=database, dimension=dimension)

    async def _run(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
        *,
        write: bool = False,
    ) -> list[Any]:
        routing = RoutingControl.WRITE if write else RoutingControl.READ
        try:
            result = await self._driver.execute_query(
                query, parameters or {}, routing_=routing, database_=self._database
            )
        except ServiceUnavailable as exc:
            raise GraphStoreError(
                message=f"Neo4j unavailable: {exc}", provider_name=_PROVIDER_NAME
            ) from exc
        except Neo4jError as exc:
            raise GraphStoreError(
                message=f"Cypher query failed: {exc}", provider_name=_PROVIDER_NAME
            ) from exc
        return list(result.records)

    # -- Read side -------------------------------------------------------------

    async def vector_search(
        self, embedding: list[float], limit: int, index_name: str = LINK_EMBEDDING_INDEX
    ) -> list[VectorHit]:
        if index_name != LINK_EMBEDDING_INDEX:
            raise GraphStoreError(
                message=f"Index {index_name!r} does not hold link embeddings",
                provider_name=_PROVIDER_NAME,
            )
        records = await self._run(
            _VECTOR_SEARCH_CYPHER,
            {"index_name": index_name, "limit": limit, "embedding": list(embedding)},
        )
        hits = [
            VectorHit(link=link_from_properties(record["node"]), score=float(record["score"]))
            for record in records
        ]
        logger.debug("vector_search_complete", index=index_name, hits=len(hits))
        return hits

    async def keyword_search(self, query: str, limit: int) -> list[KeywordHit]:
        records = await self._run(_KEYWORD_SEARCH_CYPHER, {"query": query, "limit": limit})
        hits = [
            KeywordHit(
                link=link_from_properties(record["node"]),
                category_name=record["category_name"],
                tags=[t for t in (record["tags"] or []) if t],
            )
            for record in records
        ]
        logger.debug("keyword_search_complete", query=query, hits=len(hits))
        return hits

    async def chunk_vector_search(self, embedding: list[float], limit: int) -> list[ChunkHit]:
        records = await self._run(
            _CHUNK_SEARCH_CYPHER, {"limit": limit, "embedding": list(embedding)}
        )
        return [
            ChunkHit(
                chunk_text=record["chunk_text"] or "",
                chunk_index=int(record["chunk_index"] or 0),
                score=float(record["score"]),
                link_url=record["link_url"],
                link_title=record["link_title"] or "",
                forge_score=float(record["forge_score"] or 0.0),
                content_type=record["content_type"] or DEFAULT_CONTENT_TYPE,
            )
            for record in records
        ]

    async def link_context(self, urls: list[str]) -> dict[str, LinkContext]:
        if not urls:
            return {}
        records = await self._run(_LINK_CONTEXT_CYPHER, {"urls": list(urls)})
        return {
            record["url"]: LinkContext(
                url=record["url"],
                title=record["title"] or "",
                description=record["description"] or "",
                purpose=record["purpose"],
                forge_score=record["forge_score"],
                content_type=record["content_type"],
                categories=[c for c in (record["categories"] or []) if c],
                tags=[t for t in (record["tags"] or []) if t],
                shared_by=[u for u in (record["shared_by"] or []) if u],
            )
            for record in records
        }

    async def link_exists(self, url: str) -> bool:
        records = await self._run(_LINK_EXISTS_CYPHER, {"url": url})
        return bool(records and records[0]["exists"])

    async def count_links(self) -> int:
        records = await self._run(_COUNT_LINKS_CYPHER)
        return int(records[0]["count"]) if records else 0

    # -- Write side --------------------------------------------------------------

    async def ensure_schema(self, dimension: int | None = None) -> None:
        dim = dimension or self._dimension
        for cypher in _CONSTRAINTS:
            await self._run(cypher, write=True)
        for cypher in _TEXT_INDEXES:
            await self._run(cypher, write=True)
        for name, label in _VECTOR_INDEX_LABELS.items():
            await self._run(
                _VECTOR_INDEX_TEMPLATE.format(name=name, label=label, dimension=int(dim)),
                write=True,
            )
        logger.info("neo4j_schema_ready", database=self._database, dimension=dim)

    async def upsert_link(self, link: LinkNode) -> None:
        await self._run(_UPSERT_LINK_CYPHER, link_to_parameters(link), write=True)
        logger.debug("link_upserted", url=link.url)

    async def upsert_chunks(self, link_url: str, chunks: list[ChunkNode]) -> None:
        rows = [
            {"id": c.id, "text": c.text, "index": c.index, "embedding": list(c.embedding)}
            for c in chunks
        ]
        if rows:
            await self._run(
                _UPSERT_CHUNKS_CYPHER, {"link_url": link_url, "chunks": rows}, write=True
            )
        # Re-ingesting shorter content must not leave orphaned passages behind.
        await self._run(
            _DELETE_STALE_CHUNKS_CYPHER,
            {"link_url": link_url, "keep_ids": [row["id"] for row in rows]},
            write=True,
        )
        logger.debug("chunks_upserted", url=link_url, count=len(rows))

    async def categorize_link(self, url: str, category: str) -> None:
        await self._run(_CATEGORIZE_CYPHER, {"url": url, "category": category}, write=True)

    async def tag_link(self, url: str, tags: list[str]) -> None:
        names = sorted({t.strip().lower() for t in tags if t and t.strip()})
        if names:
            await self._run(_TAG_CYPHER, {"url": url, "tags": names}, write=True)

    async def link_to(self, from_url: str, to_url: str) -> None:
        await self._run(_LINKS_TO_CYPHER, {"from_url": from_url, "to_url": to_url}, write=True)

    async def link_shared_by(self, url: str, user: str) -> None:
        await self._run(_SHARED_BY_CYPHER, {"url": url, "user": user}, write=True)

    async def close(self) -> None:
        await self._driver.close()

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME
