"""Tests for the LlamaIndex query embedder adapter."""

from unittest.mock import MagicMock

from docsql.core.embedding import LlamaIndexQueryEmbedder


class TestLlamaIndexQueryEmbedder:

    def test_uses_query_embedding(self):
        model = MagicMock()
        model.get_query_embedding.return_value = (0.1, 0.2)
        assert LlamaIndexQueryEmbedder(model).embed_query("refunds") == [0.1, 0.2]
        model.get_query_embedding.assert_called_once_with("refunds")
