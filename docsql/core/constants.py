"""Shared constants for docsql.

Score thresholds on the RRF scale and on the reranker scale are kept under
distinct names and must never be interchanged.
"""

# =============================================================================
# Hybrid Search
# =============================================================================

DEFAULT_RRF_K = 60

# RRF scores are bounded by 2 / (k + 1), roughly 0.033 for k=60
DEFAULT_RRF_MIN_SCORE = 0.0

# Reranker relevance scores are in [0, 1]
DEFAULT_RERANK_MIN_SCORE = 0.0

SOURCE_VECTOR = "vector"
SOURCE_LEXICAL = "lexical"
SOURCE_SEARCH = "search"
SOURCE_SANDBOX = "sandbox"

# =============================================================================
# SQL Sandbox
# =============================================================================

ALLOWED_STATEMENT_KINDS = frozenset({"select", "show", "explain", "describe"})

DENYLISTED_KEYWORDS = (
    "drop", "delete", "update", "insert", "alter", "create", "truncate",
    "grant", "revoke", "execute", "call", "set", "reset", "copy", "load",
)

DEFAULT_ROW_LIMIT = 1000
MAX_PREVIEW_ROWS = 100

DB_TYPE_POSTGRESQL = "postgresql"
DB_TYPE_MYSQL = "mysql"
DB_TYPE_SQLITE = "sqlite"

# =============================================================================
# Evidence-only answers
# =============================================================================

NO_RELEVANT_INFORMATION_RESPONSE = (
    "I searched your documents but couldn't find relevant information to "
    "answer that question. This could mean:\n"
    "- The content isn't in your uploaded documents\n"
    "- Try rephrasing your query\n"
    "- Try lowering the relevance score threshold in settings"
)
