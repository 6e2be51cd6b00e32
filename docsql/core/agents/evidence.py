"""Evidence gathered for one utterance.

RetrievalResult is a closed union; callers match on the concrete type:

    for result in bundle.results:
        if isinstance(result, SearchEvidence): ...
        elif isinstance(result, SandboxEvidence): ...
        elif isinstance(result, ClarificationRequest): ...
        elif isinstance(result, NoEvidence): ...
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from docsql.core.engine.retriever import SearchCandidate, SearchResponse
from docsql.core.interfaces.routing import RoutingDecision
from docsql.core.sql_sandbox.types import ExecutionResult, GeneratedSQL


@dataclass
class SearchEvidence:
    """Non-empty hybrid search results."""
    response: SearchResponse

    @property
    def candidates(self) -> List[SearchCandidate]:
        return self.response.candidates

    @property
    def degraded(self) -> bool:
        return self.response.degraded


@dataclass
class SandboxEvidence:
    """Rows returned by a sandboxed query."""
    profile_id: str
    generated: GeneratedSQL
    execution: ExecutionResult

    @property
    def rows(self):
        return self.execution.rows


@dataclass
class ClarificationRequest:
    """The NL->SQL step needs the user to disambiguate."""
    question: str


@dataclass
class NoEvidence:
    """A consulted source produced nothing usable."""
    source: str
    reason: str
    degraded: bool = False


RetrievalResult = Union[SearchEvidence, SandboxEvidence, ClarificationRequest, NoEvidence]


class EvidenceOutcome(Enum):
    """What the caller must do with a bundle."""
    ANSWER = "answer"              # answer from the evidence
    CLARIFY = "clarify"            # ask the clarification question
    REFUSE = "refuse"              # evidence-only mode with no evidence: emit the fixed refusal
    OPEN_DOMAIN = "open_domain"    # no evidence, evidence-only mode off


@dataclass
class EvidenceBundle:
    """Routing decision plus everything retrieved for it."""
    utterance: str
    decision: RoutingDecision
    results: List[RetrievalResult] = field(default_factory=list)
    evidence_only: bool = False
    outcome: EvidenceOutcome = EvidenceOutcome.OPEN_DOMAIN
    refusal_message: Optional[str] = None

    @property
    def has_evidence(self) -> bool:
        return any(isinstance(r, (SearchEvidence, SandboxEvidence)) for r in self.results)

    @property
    def search_candidates(self) -> List[SearchCandidate]:
        candidates: List[SearchCandidate] = []
        for result in self.results:
            if isinstance(result, SearchEvidence):
                candidates.extend(result.candidates)
        return candidates

    @property
    def sandbox_results(self) -> List[SandboxEvidence]:
        return [r for r in self.results if isinstance(r, SandboxEvidence)]

    @property
    def clarification(self) -> Optional[str]:
        for result in self.results:
            if isinstance(result, ClarificationRequest):
                return result.question
        return None
