"""Agent router: decides which evidence sources answer an utterance.

The classifier gives a first-pass verdict. The router then applies its own
rules on top of it:
- The sandbox is never selected when the owner has no tables
- Anaphoric follow-ups ("list them") after a tabular exchange go to the sandbox
- In evidence-only mode at least one available source is consulted
- A failing classifier falls back to search, or to the sandbox when only tables exist

It keeps no state between calls; history is passed in.
"""

import logging
import re
from typing import List, Optional

from docsql.core.agents.evidence import (
    EvidenceBundle,
    EvidenceOutcome,
    NoEvidence,
    RetrievalResult,
    SearchEvidence,
)
from docsql.core.agents.intent_classifier import TABULAR_PATTERN
from docsql.core.agents.sql_agent import TabularEvidenceAgent
from docsql.core.constants import NO_RELEVANT_INFORMATION_RESPONSE, SOURCE_SANDBOX, SOURCE_SEARCH
from docsql.core.engine.retriever import HybridSearchEngine, RetrievalStatus, SearchOptions
from docsql.core.exceptions import DecryptionError, NotFoundError
from docsql.core.interfaces.routing import (
    ConversationTurn,
    IntentClassifier,
    IntentVerdict,
    ResolvedReferent,
    ResourceAvailability,
    ResponseGenerator,
    RoutingDecision,
)
from docsql.core.observability import describe_error
from docsql.setting import RouterSettings, get_settings

logger = logging.getLogger(__name__)

ANAPHORA_PATTERN = re.compile(
    r"\b(them|those|these|they|that one|the same|ones)\b",
    re.IGNORECASE
)

TABULAR_REPLY_PATTERN = re.compile(
    r"\b(rows?|columns?|table|count|total|sum|average)\b",
    re.IGNORECASE
)


class AgentRouter:
    """Routes utterances to hybrid search and/or the SQL sandbox."""

    def __init__(
        self,
        classifier: IntentClassifier,
        search_engine: Optional[HybridSearchEngine] = None,
        tabular_agent: Optional[TabularEvidenceAgent] = None,
        settings: Optional[RouterSettings] = None,
    ):
        """Initialize router.

        Args:
            classifier: First-pass intent classifier
            search_engine: Hybrid search over documents
            tabular_agent: NL->SQL plus sandbox execution
            settings: Router settings (defaults to global settings)
        """
        self._classifier = classifier
        self._search = search_engine
        self._tabular = tabular_agent
        self._settings = settings or get_settings().router

    def decide(
        self,
        utterance: str,
        availability: ResourceAvailability,
        history: Optional[List[ConversationTurn]] = None,
        evidence_only: Optional[bool] = None,
    ) -> RoutingDecision:
        """Decide which sources to consult."""
        if evidence_only is None:
            evidence_only = self._settings.evidence_only
        recent = list(history or [])[-self._settings.history_turns:]

        try:
            verdict = self._classifier.classify(utterance, availability, recent)
        except Exception as e:
            logger.warning(f"Intent classification failed, using fallback routing: {e}")
            verdict = self._fallback_verdict(availability)

        decision = RoutingDecision(
            use_search=verdict.use_search and availability.has_documents,
            use_sandbox=verdict.use_sandbox and availability.has_tables,
            reasoning=verdict.reasoning,
            evidence_only=evidence_only,
            metadata={"classifier_verdict": verdict, "overrides": []},
        )

        if availability.has_tables:
            referents = self._resolve_tabular_follow_up(utterance, recent)
            if referents:
                decision.resolved_referents = referents
                if not decision.use_sandbox:
                    decision.use_sandbox = True
                    decision.reasoning += " | follow-up to a tabular answer, routed to sandbox"
                    decision.metadata["overrides"].append("tabular_follow_up")

        if evidence_only and not decision.uses_any_source:
            if availability.has_documents:
                decision.use_search = True
                decision.reasoning += " | evidence-only mode, forced search"
                decision.metadata["overrides"].append("evidence_only_search")
            elif availability.has_tables:
                decision.use_sandbox = True
                decision.reasoning += " | evidence-only mode, forced sandbox"
                decision.metadata["overrides"].append("evidence_only_sandbox")

        logger.info(
            f"Routing decision: search={decision.use_search}, sandbox={decision.use_sandbox} "
            f"({decision.reasoning})"
        )
        return decision

    def gather(
        self,
        utterance: str,
        owner_id: str,
        availability: ResourceAvailability,
        history: Optional[List[ConversationTurn]] = None,
        evidence_only: Optional[bool] = None,
        search_options: Optional[SearchOptions] = None,
        profile_id: Optional[str] = None,
    ) -> EvidenceBundle:
        """Decide, retrieve, and assemble an evidence bundle.

        Raises:
            NotFoundError: If profile_id is not owned by owner_id
            DecryptionError: If stored credentials cannot be decrypted
        """
        decision = self.decide(utterance, availability, history, evidence_only)
        recent = list(history or [])[-self._settings.history_turns:]
        results: List[RetrievalResult] = []

        if decision.use_search:
            results.append(self._run_search(utterance, owner_id, search_options))

        if decision.use_sandbox:
            sandbox_utterance = self._with_referents(utterance, decision.resolved_referents)
            results.append(self._run_sandbox(sandbox_utterance, owner_id, recent, profile_id))

        bundle = EvidenceBundle(
            utterance=utterance,
            decision=decision,
            results=results,
            evidence_only=decision.evidence_only,
        )
        if bundle.has_evidence:
            bundle.outcome = EvidenceOutcome.ANSWER
        elif bundle.clarification is not None:
            bundle.outcome = EvidenceOutcome.CLARIFY
        elif bundle.evidence_only:
            bundle.outcome = EvidenceOutcome.REFUSE
            bundle.refusal_message = NO_RELEVANT_INFORMATION_RESPONSE
            logger.info("No evidence retrieved in evidence-only mode, refusing")
        else:
            bundle.outcome = EvidenceOutcome.OPEN_DOMAIN
        return bundle

    def _run_search(self, utterance: str, owner_id: str, options: Optional[SearchOptions]) -> RetrievalResult:
        if self._search is None:
            return NoEvidence(SOURCE_SEARCH, "Document search not configured")
        response = self._search.search(utterance, owner_id, options)
        if response.candidates:
            return SearchEvidence(response)
        if response.status == RetrievalStatus.FAILED:
            return NoEvidence(SOURCE_SEARCH, "All search sources failed", degraded=True)
        return NoEvidence(SOURCE_SEARCH, "No relevant passages found", degraded=response.degraded)

    def _run_sandbox(
        self,
        utterance: str,
        owner_id: str,
        history: List[ConversationTurn],
        profile_id: Optional[str],
    ) -> RetrievalResult:
        if self._tabular is None:
            return NoEvidence(SOURCE_SANDBOX, "SQL sandbox not configured")
        try:
            return self._tabular.run(utterance, owner_id, history, profile_id)
        except (DecryptionError, NotFoundError):
            raise
        except Exception as e:
            # Search evidence already gathered must still reach the caller
            logger.error(f"Tabular evidence failed for owner {owner_id}: {describe_error(e)}")
            return NoEvidence(SOURCE_SANDBOX, "Tabular lookup failed", degraded=True)

    @staticmethod
    def _fallback_verdict(availability: ResourceAvailability) -> IntentVerdict:
        if availability.has_documents:
            return IntentVerdict(True, False, "Classifier unavailable, defaulting to search", 0.0)
        if availability.has_tables:
            return IntentVerdict(False, True, "Classifier unavailable, only tables available", 0.0)
        return IntentVerdict(False, False, "Classifier unavailable, no sources", 0.0)

    @staticmethod
    def _resolve_tabular_follow_up(
        utterance: str,
        history: List[ConversationTurn],
    ) -> List[ResolvedReferent]:
        """Resolve anaphora against the most recent user/assistant pair."""
        match = ANAPHORA_PATTERN.search(utterance)
        if not match or not history:
            return []

        last_user = next((t for t in reversed(history) if t.role == "user"), None)
        last_assistant = next((t for t in reversed(history) if t.role == "assistant"), None)
        if last_user is None:
            return []

        flags = [t.used_sandbox for t in (last_user, last_assistant) if t is not None and t.used_sandbox is not None]
        if flags:
            tabular = any(flags)
        else:
            tabular = bool(TABULAR_PATTERN.search(last_user.content)) or (
                last_assistant is not None and bool(TABULAR_REPLY_PATTERN.search(last_assistant.content))
            )
        if not tabular:
            return []
        return [ResolvedReferent(expression=match.group(0), antecedent=last_user.content)]

    @staticmethod
    def _with_referents(utterance: str, referents: List[ResolvedReferent]) -> str:
        if not referents:
            return utterance
        context = "; ".join(f'"{r.expression}" refers to: {r.antecedent}' for r in referents)
        return f"{utterance}\n(Context: {context})"


def deliver_answer(bundle: EvidenceBundle, generator: ResponseGenerator) -> str:
    """Produce the final reply for a bundle.

    A refused bundle returns the fixed refusal without calling the generator.
    """
    if bundle.outcome == EvidenceOutcome.REFUSE:
        return bundle.refusal_message or NO_RELEVANT_INFORMATION_RESPONSE
    if bundle.outcome == EvidenceOutcome.CLARIFY:
        return bundle.clarification or ""
    return generator.generate(bundle.utterance, bundle, bundle.evidence_only)
