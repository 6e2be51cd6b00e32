from .retriever import (
    HybridSearchEngine,
    RetrievalStatus,
    SearchCandidate,
    SearchOptions,
    SearchResponse,
    reciprocal_rank_fusion,
)

__all__ = [
    "HybridSearchEngine",
    "RetrievalStatus",
    "SearchCandidate",
    "SearchOptions",
    "SearchResponse",
    "reciprocal_rank_fusion",
]
