from .embedding import LlamaIndexQueryEmbedder

__all__ = ["LlamaIndexQueryEmbedder"]
