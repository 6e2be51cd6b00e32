from .reranker_provider import LlamaIndexReranker, get_shared_reranker, resolve_model_path

__all__ = ["LlamaIndexReranker", "get_shared_reranker", "resolve_model_path"]
