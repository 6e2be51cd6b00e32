"""Abstract interfaces for the retrieval collaborators used by hybrid search.

Indexes are owner-scoped: every query carries the owner id and an
implementation must never return another owner's chunks.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class VectorHit:
    """A nearest-neighbour match. similarity is cosine similarity in [0, 1]."""
    id: str
    content: str
    similarity: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LexicalHit:
    """A full-text match. rank is the engine's relevance rank (higher is better)."""
    id: str
    content: str
    rank: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RerankScore:
    """Reranker output for documents[index]."""
    index: int
    relevance_score: float


class VectorIndex(ABC):
    """Similarity search over embedded chunks."""

    @abstractmethod
    def query(self, owner_id: str, query_vector: List[float], k: int) -> List[VectorHit]:
        """Return up to k hits ordered by ascending distance (descending similarity)."""
        pass


class LexicalIndex(ABC):
    """Tokenized full-text search over the same chunks."""

    @abstractmethod
    def query(self, owner_id: str, query_text: str, k: int) -> List[LexicalHit]:
        """Return up to k hits ordered by descending rank."""
        pass


class QueryEmbedder(ABC):
    """Turns query text into the vector space of the index."""

    @abstractmethod
    def embed_query(self, text: str) -> List[float]:
        pass


class SemanticReranker(ABC):
    """Scores a (query, documents) batch."""

    @abstractmethod
    def rerank(self, query: str, documents: List[str], top_n: int) -> List[RerankScore]:
        """Score documents against the query.

        Args:
            query: Search query
            documents: Candidate texts
            top_n: Maximum number of scores to return

        Returns:
            Scores in [0, 1]; documents left out are considered dropped
        """
        pass
