"""Tests for the intent classifiers."""

from unittest.mock import MagicMock

import pytest

from docsql.core.agents.intent_classifier import HeuristicIntentClassifier, LLMIntentClassifier
from docsql.core.interfaces.routing import ResourceAvailability

BOTH = ResourceAvailability(has_documents=True, has_tables=True)
DOCS_ONLY = ResourceAvailability(has_documents=True, has_tables=False)
TABLES_ONLY = ResourceAvailability(has_documents=False, has_tables=True)
NOTHING = ResourceAvailability(has_documents=False, has_tables=False)


class TestHeuristicIntentClassifier:
    """Tests for keyword routing priority."""

    @pytest.fixture
    def classifier(self):
        return HeuristicIntentClassifier()

    def test_tabular_keywords(self, classifier):
        verdict = classifier.classify("How many orders shipped last month?", BOTH, [])
        assert verdict.use_sandbox and not verdict.use_search

    def test_document_keywords(self, classifier):
        verdict = classifier.classify("Explain the refund process", BOTH, [])
        assert verdict.use_search and not verdict.use_sandbox

    def test_tabular_wins_over_document(self, classifier):
        """Test that tabular keywords take priority when tables exist."""
        verdict = classifier.classify("Explain the total revenue", BOTH, [])
        assert verdict.use_sandbox

    def test_no_keywords_defaults_to_search(self, classifier):
        verdict = classifier.classify("Hamlet's soliloquy", BOTH, [])
        assert verdict.use_search and not verdict.use_sandbox

    def test_tabular_keywords_without_tables(self, classifier):
        verdict = classifier.classify("count the chapters", DOCS_ONLY, [])
        assert not verdict.use_sandbox
        assert not verdict.use_search

    def test_only_tables(self, classifier):
        verdict = classifier.classify("tell me about customers", TABLES_ONLY, [])
        assert verdict.use_sandbox

    def test_nothing_available(self, classifier):
        verdict = classifier.classify("hello", NOTHING, [])
        assert not verdict.use_search and not verdict.use_sandbox


class TestLLMIntentClassifier:
    """Tests for the LLM classifier."""

    def test_parses_json(self):
        llm = MagicMock()
        llm.complete.return_value = MagicMock(
            text='Sure.\n{"use_search": true, "use_sandbox": false, "reasoning": "policy question", "confidence": 0.8}'
        )
        verdict = LLMIntentClassifier(llm).classify("what is the refund policy?", BOTH, [])
        assert verdict.use_search
        assert not verdict.use_sandbox
        assert verdict.confidence == 0.8
        prompt = llm.complete.call_args[0][0]
        assert "what is the refund policy?" in prompt

    def test_unparseable_raises(self):
        llm = MagicMock()
        llm.complete.return_value = MagicMock(text="I think search.")
        with pytest.raises(ValueError):
            LLMIntentClassifier(llm).classify("q", BOTH, [])
