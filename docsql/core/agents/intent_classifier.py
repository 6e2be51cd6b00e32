"""First-pass intent classifiers for routing.

HeuristicIntentClassifier uses keyword patterns and needs no model.
LLMIntentClassifier asks a LlamaIndex LLM for a JSON verdict and raises
ValueError when the response cannot be parsed, so the router can fall back.
"""

import json
import logging
import re
from typing import List

from llama_index.core.llms.llm import LLM

from docsql.core.interfaces.routing import (
    ConversationTurn,
    IntentClassifier,
    IntentVerdict,
    ResourceAvailability,
)
from docsql.core.prompt.routing_prompts import INTENT_CLASSIFICATION_PROMPT
from docsql.core.prompt.sql_prompts import format_history

logger = logging.getLogger(__name__)

# Counts, aggregates, listings and table vocabulary
TABULAR_PATTERN = re.compile(
    r"\b(count|how many|sum|total|average|mean|median|max|min|highest|lowest|top|bottom|"
    r"list|show|table|rows?|columns?|csv|excel|data|query|filter|sort|order|group|where|select)\b",
    re.IGNORECASE
)

# Explanations, descriptions and summaries
DOCUMENT_PATTERN = re.compile(
    r"\b(explain|describe|what is|tell me about|summarize|summary|definition|meaning|concept|"
    r"why|how does|background|context|information about)\b",
    re.IGNORECASE
)


class HeuristicIntentClassifier(IntentClassifier):
    """Keyword classifier.

    Priority:
    1. Tabular keywords with tables available -> sandbox
    2. Document keywords with documents available -> search
    3. Documents available and no tabular intent -> search
    4. Only tables available -> sandbox
    5. Nothing matched -> neither
    """

    def classify(
        self,
        utterance: str,
        availability: ResourceAvailability,
        history: List[ConversationTurn],
    ) -> IntentVerdict:
        tabular_intent = bool(TABULAR_PATTERN.search(utterance))
        document_intent = bool(DOCUMENT_PATTERN.search(utterance))

        if availability.has_tables and tabular_intent:
            return IntentVerdict(False, True, "Tabular keywords detected (count/list/query)", 0.7)
        if availability.has_documents and document_intent:
            return IntentVerdict(True, False, "Document keywords detected (explain/describe/what is)", 0.7)
        if availability.has_documents and not tabular_intent:
            return IntentVerdict(True, False, "Text search (no specific tabular intent)", 0.5)
        if availability.has_tables and not availability.has_documents:
            return IntentVerdict(False, True, "Only tables available", 0.5)
        return IntentVerdict(False, False, "No clear retrieval pattern", 0.3)


class LLMIntentClassifier(IntentClassifier):
    """LLM classifier with a JSON response contract."""

    def __init__(self, llm: LLM):
        self._llm = llm

    def classify(
        self,
        utterance: str,
        availability: ResourceAvailability,
        history: List[ConversationTurn],
    ) -> IntentVerdict:
        prompt = INTENT_CLASSIFICATION_PROMPT.format(
            has_documents="available" if availability.has_documents else "none",
            has_tables="available" if availability.has_tables else "none",
            history=format_history(history),
            utterance=utterance,
        )
        response = self._llm.complete(prompt)
        return self._parse(response.text.strip())

    @staticmethod
    def _parse(text: str) -> IntentVerdict:
        json_match = re.search(r'\{[\s\S]*\}', text)
        if not json_match:
            raise ValueError(f"No JSON found in classification response: {text[:200]}")
        data = json.loads(json_match.group())
        return IntentVerdict(
            use_search=bool(data.get("use_search", False)),
            use_sandbox=bool(data.get("use_sandbox", False)),
            reasoning=str(data.get("reasoning", "")),
            confidence=float(data.get("confidence", 0.0) or 0.0),
        )
