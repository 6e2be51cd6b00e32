"""Abstract interfaces and value types for agent routing.

The router decides which evidence sources to consult:
- Hybrid search over unstructured documents
- The SQL sandbox over structured tables (through an NL->SQL generator)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional

from docsql.core.sql_sandbox.types import GeneratedSQL, SchemaContext

if TYPE_CHECKING:
    from docsql.core.agents.evidence import EvidenceBundle


@dataclass
class ConversationTurn:
    """One message of conversation history.

    used_sandbox records whether the turn was answered from tabular results;
    None means unknown and text heuristics apply.
    """
    role: Literal["user", "assistant"]
    content: str
    used_sandbox: Optional[bool] = None


@dataclass
class ResourceAvailability:
    """What the owner has uploaded or connected."""
    has_documents: bool
    has_tables: bool


@dataclass
class IntentVerdict:
    """First-pass classification of an utterance."""
    use_search: bool
    use_sandbox: bool
    reasoning: str = ""
    confidence: float = 0.0


@dataclass
class ResolvedReferent:
    """An anaphoric expression and the user turn it points back to."""
    expression: str
    antecedent: str


@dataclass
class RoutingDecision:
    """Which sources to consult for one utterance.

    Attributes:
        use_search: Run hybrid search over documents
        use_sandbox: Run NL->SQL and the sandbox over tables
        reasoning: Explanation of the decision, including any overrides
        resolved_referents: Anaphora resolved against recent turns
        evidence_only: The answer must come from retrieved evidence only
        metadata: Extra routing details (classifier verdict, overrides)
    """
    use_search: bool
    use_sandbox: bool
    reasoning: str = ""
    resolved_referents: List[ResolvedReferent] = field(default_factory=list)
    evidence_only: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def uses_any_source(self) -> bool:
        return self.use_search or self.use_sandbox


class IntentClassifier(ABC):
    """First-pass classifier; the router applies its own overrides on top."""

    @abstractmethod
    def classify(
        self,
        utterance: str,
        availability: ResourceAvailability,
        history: List[ConversationTurn],
    ) -> IntentVerdict:
        pass


class NLToSQLGenerator(ABC):
    """Produces a candidate SQL statement for an utterance."""

    @abstractmethod
    def generate(
        self,
        utterance: str,
        schema_context: SchemaContext,
        history: List[ConversationTurn],
    ) -> GeneratedSQL:
        pass


class ResponseGenerator(ABC):
    """Writes the final answer from an evidence bundle.

    When evidence_only is True the implementation must answer from the
    bundle alone.
    """

    @abstractmethod
    def generate(self, utterance: str, bundle: "EvidenceBundle", evidence_only: bool) -> str:
        pass
