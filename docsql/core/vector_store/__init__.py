from .pg_chunk_index import PGVectorIndex, PGLexicalIndex

__all__ = ["PGVectorIndex", "PGLexicalIndex"]
