"""Abstract interfaces for swappable retrieval and routing collaborators."""

from .retrieval import (
    VectorHit,
    LexicalHit,
    RerankScore,
    VectorIndex,
    LexicalIndex,
    QueryEmbedder,
    SemanticReranker,
)
from .routing import (
    ConversationTurn,
    ResourceAvailability,
    IntentVerdict,
    ResolvedReferent,
    RoutingDecision,
    IntentClassifier,
    NLToSQLGenerator,
    ResponseGenerator,
)

__all__ = [
    "VectorHit",
    "LexicalHit",
    "RerankScore",
    "VectorIndex",
    "LexicalIndex",
    "QueryEmbedder",
    "SemanticReranker",
    "ConversationTurn",
    "ResourceAvailability",
    "IntentVerdict",
    "ResolvedReferent",
    "RoutingDecision",
    "IntentClassifier",
    "NLToSQLGenerator",
    "ResponseGenerator",
]
