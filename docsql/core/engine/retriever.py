"""Hybrid search over owner-scoped document chunks.

Pipeline:
1. Vector and lexical queries run concurrently, each with its own timeout
2. Reciprocal Rank Fusion merges the two rank lists
3. The top fused candidates form a rerank window
4. An optional semantic reranker rescores the window
5. A score floor (on the scale actually used) and top_k truncate the result

Either source may fail alone; the search continues on the other and is
reported as degraded. Both failing yields an empty, degraded response.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from docsql.core.constants import SOURCE_LEXICAL, SOURCE_VECTOR
from docsql.core.interfaces.retrieval import (
    LexicalHit,
    LexicalIndex,
    QueryEmbedder,
    SemanticReranker,
    VectorHit,
    VectorIndex,
)
from docsql.setting import SearchSettings, get_settings

logger = logging.getLogger(__name__)


class RetrievalStatus(Enum):
    """Health of a search call."""
    OK = "ok"
    DEGRADED = "degraded"    # one source failed or timed out
    FAILED = "failed"        # both sources failed; candidates are empty


@dataclass
class SearchCandidate:
    """A fused search result.

    fused_score is the RRF score. rerank_score is set only when the reranker
    scored the candidate; relevance_score is whichever one ordered the output.
    """
    chunk_id: str
    text: str
    fused_score: float
    vector_score: Optional[float] = None
    text_score: Optional[float] = None
    rerank_score: Optional[float] = None
    vector_rank: Optional[int] = None
    text_rank: Optional[int] = None
    source_document: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def relevance_score(self) -> float:
        return self.rerank_score if self.rerank_score is not None else self.fused_score


@dataclass
class SearchResponse:
    """Ordered candidates plus how they were produced."""
    candidates: List[SearchCandidate]
    status: RetrievalStatus = RetrievalStatus.OK
    failed_sources: List[str] = field(default_factory=list)
    reranked: bool = False
    elapsed_ms: float = 0.0

    @property
    def degraded(self) -> bool:
        return self.status != RetrievalStatus.OK

    def __len__(self) -> int:
        return len(self.candidates)


class SearchOptions(BaseModel):
    """Per-call search options.

    min_relevance applies to reranker scores (0-1). min_rrf_score applies to
    fused scores when reranking is off, unavailable or failed. The two are on
    different scales and are never substituted for each other.
    """
    top_k: int = Field(default=5, ge=1)
    vector_threshold: float = Field(default=0.0, ge=0.0)
    text_threshold: float = Field(default=0.0, ge=0.0)
    min_relevance: float = Field(default=0.0, ge=0.0, le=1.0)
    min_rrf_score: float = Field(default=0.0, ge=0.0)
    rerank: bool = True
    rrf_k: int = Field(default=60, ge=1)
    rerank_window: int = Field(default=20, ge=1)
    candidate_pool: int = Field(default=40, ge=1)
    time_budget_seconds: Optional[float] = Field(default=None, gt=0.0)

    @classmethod
    def from_settings(cls, settings: Optional[SearchSettings] = None, **overrides) -> "SearchOptions":
        settings = settings or get_settings().search
        values = {
            "top_k": settings.top_k,
            "vector_threshold": settings.vector_threshold,
            "text_threshold": settings.text_threshold,
            "min_relevance": settings.rerank_min_score,
            "min_rrf_score": settings.rrf_min_score,
            "rerank": settings.use_reranking,
            "rrf_k": settings.rrf_k,
            "rerank_window": settings.rerank_window,
            "candidate_pool": settings.candidate_pool,
        }
        values.update(overrides)
        return cls(**values)


def reciprocal_rank_fusion(
    vector_hits: List[VectorHit],
    lexical_hits: List[LexicalHit],
    k: int = 60,
) -> List[SearchCandidate]:
    """Fuse two rank-ordered lists with Reciprocal Rank Fusion.

    Each candidate scores sum(1 / (k + rank)) over the lists it appears in,
    with 1-based ranks. Ties break by vector rank, then lexical rank, then
    first appearance.

    Args:
        vector_hits: Vector results, best first
        lexical_hits: Lexical results, best first
        k: RRF constant

    Returns:
        Candidates sorted by descending fused score
    """
    candidates: Dict[str, SearchCandidate] = {}
    order: Dict[str, int] = {}

    for rank, hit in enumerate(vector_hits, 1):
        if hit.id in candidates:
            continue
        candidates[hit.id] = SearchCandidate(
            chunk_id=hit.id,
            text=hit.content,
            fused_score=1.0 / (k + rank),
            vector_score=hit.similarity,
            vector_rank=rank,
            source_document=_source_document(hit.metadata),
            metadata=dict(hit.metadata),
        )
        order[hit.id] = len(order)

    for rank, hit in enumerate(lexical_hits, 1):
        existing = candidates.get(hit.id)
        if existing is not None:
            if existing.text_rank is not None:
                continue
            existing.fused_score += 1.0 / (k + rank)
            existing.text_score = hit.rank
            existing.text_rank = rank
            continue
        candidates[hit.id] = SearchCandidate(
            chunk_id=hit.id,
            text=hit.content,
            fused_score=1.0 / (k + rank),
            text_score=hit.rank,
            text_rank=rank,
            source_document=_source_document(hit.metadata),
            metadata=dict(hit.metadata),
        )
        order[hit.id] = len(order)

    missing = float("inf")
    return sorted(
        candidates.values(),
        key=lambda c: (
            -c.fused_score,
            c.vector_rank if c.vector_rank is not None else missing,
            c.text_rank if c.text_rank is not None else missing,
            order[c.chunk_id],
        ),
    )


def _source_document(metadata: Dict[str, Any]) -> Optional[str]:
    for key in ("file_name", "document_id", "source_id"):
        if metadata.get(key):
            return str(metadata[key])
    return None


class HybridSearchEngine:
    """Vector + lexical search fused with RRF and optionally reranked."""

    def __init__(
        self,
        vector_index: VectorIndex,
        lexical_index: LexicalIndex,
        embedder: QueryEmbedder,
        reranker: Optional[SemanticReranker] = None,
        source_timeout_seconds: Optional[float] = None,
        settings: Optional[SearchSettings] = None,
    ):
        """Initialize engine.

        Args:
            vector_index: Nearest-neighbour index
            lexical_index: Full-text index
            embedder: Query embedder for the vector index
            reranker: Optional semantic reranker
            source_timeout_seconds: Timeout for each source query
            settings: Search settings (default from config)
        """
        self._settings = settings or get_settings().search
        self._vector_index = vector_index
        self._lexical_index = lexical_index
        self._embedder = embedder
        self._reranker = reranker
        self._source_timeout = source_timeout_seconds or self._settings.source_timeout_seconds

    def search(self, query: str, owner_id: str, options: Optional[SearchOptions] = None) -> SearchResponse:
        """Search an owner's chunks.

        Args:
            query: Natural-language query
            owner_id: Owner whose chunks are searched
            options: Search options (default from settings)

        Returns:
            SearchResponse with at most options.top_k candidates
        """
        options = options or SearchOptions.from_settings(self._settings)
        start = time.perf_counter()

        if not query or not query.strip():
            return SearchResponse(candidates=[])

        # One worker per source and per call: a hung source keeps only its own
        # thread, so later searches still start both sources immediately
        workers = ThreadPoolExecutor(max_workers=2, thread_name_prefix="docsql-search")
        try:
            vector_future = workers.submit(self._query_vector, query, owner_id, options)
            lexical_future = workers.submit(self._query_lexical, query, owner_id, options)

            # Both sources started together, so they share one deadline
            deadline = time.monotonic() + self._source_timeout
            failed: List[str] = []
            vector_hits = self._collect(vector_future, SOURCE_VECTOR, owner_id, failed, deadline)
            lexical_hits = self._collect(lexical_future, SOURCE_LEXICAL, owner_id, failed, deadline)
        finally:
            workers.shutdown(wait=False)

        if len(failed) == 2:
            logger.error(f"Both search sources failed for owner {owner_id}")
            return SearchResponse(
                candidates=[],
                status=RetrievalStatus.FAILED,
                failed_sources=failed,
                elapsed_ms=_elapsed_ms(start),
            )

        fused = reciprocal_rank_fusion(vector_hits, lexical_hits, k=options.rrf_k)
        window = fused[:max(options.top_k, options.rerank_window)]

        reranked = self._rerank(query, window, options, start)
        if reranked is not None:
            results = [c for c in reranked if c.rerank_score >= options.min_relevance]
        else:
            results = [c for c in window if c.fused_score >= options.min_rrf_score]

        response = SearchResponse(
            candidates=results[:options.top_k],
            status=RetrievalStatus.DEGRADED if failed else RetrievalStatus.OK,
            failed_sources=failed,
            reranked=reranked is not None,
            elapsed_ms=_elapsed_ms(start),
        )
        logger.debug(
            f"Hybrid search for owner {owner_id}: {len(vector_hits)} vector, "
            f"{len(lexical_hits)} lexical, {len(fused)} fused, {len(response)} returned "
            f"(reranked={response.reranked}, status={response.status.value})"
        )
        return response

    def _query_vector(self, query: str, owner_id: str, options: SearchOptions) -> List[VectorHit]:
        vector = self._embedder.embed_query(query)
        hits = self._vector_index.query(owner_id, vector, options.candidate_pool)
        return [h for h in hits if h.similarity >= options.vector_threshold]

    def _query_lexical(self, query: str, owner_id: str, options: SearchOptions) -> List[LexicalHit]:
        hits = self._lexical_index.query(owner_id, query, options.candidate_pool)
        return [h for h in hits if h.rank >= options.text_threshold]

    def _collect(self, future, source: str, owner_id: str, failed: List[str], deadline: float) -> list:
        try:
            return future.result(timeout=max(0.0, deadline - time.monotonic()))
        except FutureTimeout:
            future.cancel()
            logger.warning(f"{source} search timed out after {self._source_timeout}s for owner {owner_id}")
        except Exception as e:
            logger.warning(f"{source} search failed for owner {owner_id}: {e}")
        failed.append(source)
        return []

    def _rerank(
        self,
        query: str,
        window: List[SearchCandidate],
        options: SearchOptions,
        start: float,
    ) -> Optional[List[SearchCandidate]]:
        """Rescore the window; None means fall back to fused ordering."""
        if not options.rerank or self._reranker is None or not window:
            return None

        if options.time_budget_seconds is not None and time.perf_counter() - start >= options.time_budget_seconds:
            logger.info("Skipping rerank: time budget exhausted")
            return None

        try:
            scores = self._reranker.rerank(query, [c.text for c in window], options.top_k)
        except Exception as e:
            logger.warning(f"Reranker failed, using fused ranking: {e}")
            return None

        rescored: Dict[int, SearchCandidate] = {}
        for score in scores:
            if 0 <= score.index < len(window) and score.index not in rescored:
                relevance = min(1.0, max(0.0, float(score.relevance_score)))
                rescored[score.index] = replace(window[score.index], rerank_score=relevance)

        # Stable on window position, so equal reranker scores keep fused order
        return [rescored[i] for i in sorted(rescored, key=lambda i: (-rescored[i].rerank_score, i))]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
