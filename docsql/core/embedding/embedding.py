from typing import List

from llama_index.core.base.embeddings.base import BaseEmbedding

from docsql.core.interfaces.retrieval import QueryEmbedder


class LlamaIndexQueryEmbedder(QueryEmbedder):
    """Embeds queries with any LlamaIndex embedding model.

    The model must be the one ingestion used for the chunks table.
    """

    def __init__(self, embed_model: BaseEmbedding):
        self._embed_model = embed_model

    def embed_query(self, text: str) -> List[float]:
        return list(self._embed_model.get_query_embedding(text))
