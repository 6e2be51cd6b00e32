from .evidence import (
    ClarificationRequest,
    EvidenceBundle,
    EvidenceOutcome,
    NoEvidence,
    RetrievalResult,
    SandboxEvidence,
    SearchEvidence,
)
from .intent_classifier import HeuristicIntentClassifier, LLMIntentClassifier
from .sql_agent import TabularEvidenceAgent
from .router import AgentRouter, deliver_answer

__all__ = [
    "ClarificationRequest",
    "EvidenceBundle",
    "EvidenceOutcome",
    "NoEvidence",
    "RetrievalResult",
    "SandboxEvidence",
    "SearchEvidence",
    "HeuristicIntentClassifier",
    "LLMIntentClassifier",
    "TabularEvidenceAgent",
    "AgentRouter",
    "deliver_answer",
]
