"""PostgreSQL indexes over ingested document chunks.

Reads the chunks table written by ingestion:
    chunks(id, user_id, document_id, content, chunk_index, page_number,
           metadata jsonb, embedding vector)

Vector search uses pgvector cosine distance; lexical search uses the
English text-search configuration with ts_rank_cd. Both filter by user_id.
"""

import json
import logging
import re
from typing import Any, Dict, List

from sqlalchemy import text
from sqlalchemy.engine import Engine

from docsql.core.interfaces.retrieval import LexicalHit, LexicalIndex, VectorHit, VectorIndex

logger = logging.getLogger(__name__)

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def _check_table_name(table_name: str) -> str:
    if not _TABLE_NAME.match(table_name):
        raise ValueError(f"Invalid chunk table name: {table_name!r}")
    return table_name


def _row_metadata(row) -> Dict[str, Any]:
    metadata = row.metadata
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    metadata = dict(metadata or {})
    metadata.setdefault("document_id", str(row.document_id) if row.document_id else None)
    metadata.setdefault("chunk_index", row.chunk_index)
    metadata.setdefault("page_number", row.page_number)
    return metadata


class PGVectorIndex(VectorIndex):
    """Cosine-similarity search with pgvector."""

    def __init__(self, engine: Engine, table_name: str = "chunks"):
        self._engine = engine
        self._table = _check_table_name(table_name)

    def query(self, owner_id: str, query_vector: List[float], k: int) -> List[VectorHit]:
        embedding = "[" + ",".join(repr(float(v)) for v in query_vector) + "]"
        sql = text(f"""
            SELECT c.id, c.document_id, c.content, c.chunk_index, c.page_number, c.metadata,
                   1 - (c.embedding <=> CAST(:embedding AS vector)) AS similarity
            FROM {self._table} c
            WHERE c.user_id = :owner_id
              AND c.embedding IS NOT NULL
            ORDER BY c.embedding <=> CAST(:embedding AS vector) ASC
            LIMIT :k
        """)
        with self._engine.connect() as conn:
            rows = conn.execute(sql, {"embedding": embedding, "owner_id": owner_id, "k": k}).fetchall()

        return [
            VectorHit(
                id=str(row.id),
                content=row.content,
                similarity=float(row.similarity),
                metadata=_row_metadata(row),
            )
            for row in rows
        ]


class PGLexicalIndex(LexicalIndex):
    """Full-text search with tsvector/tsquery."""

    def __init__(self, engine: Engine, table_name: str = "chunks", text_search_config: str = "english"):
        self._engine = engine
        self._table = _check_table_name(table_name)
        self._config = text_search_config

    def query(self, owner_id: str, query_text: str, k: int) -> List[LexicalHit]:
        sql = text(f"""
            SELECT c.id, c.document_id, c.content, c.chunk_index, c.page_number, c.metadata,
                   ts_rank_cd(
                       to_tsvector(CAST(:config AS regconfig), c.content),
                       websearch_to_tsquery(CAST(:config AS regconfig), :query)
                   ) AS rank
            FROM {self._table} c
            WHERE c.user_id = :owner_id
              AND to_tsvector(CAST(:config AS regconfig), c.content)
                  @@ websearch_to_tsquery(CAST(:config AS regconfig), :query)
            ORDER BY rank DESC
            LIMIT :k
        """)
        with self._engine.connect() as conn:
            rows = conn.execute(
                sql, {"config": self._config, "query": query_text, "owner_id": owner_id, "k": k}
            ).fetchall()

        return [
            LexicalHit(
                id=str(row.id),
                content=row.content,
                rank=float(row.rank),
                metadata=_row_metadata(row),
            )
            for row in rows
        ]
