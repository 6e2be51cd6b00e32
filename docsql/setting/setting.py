"""Settings Module.

Loads configuration from config/docsql.yaml with environment variable and
Python defaults as fallback. Secrets come from the environment only.
"""

import os
from functools import lru_cache
from pydantic import BaseModel, Field
from typing import Any, Dict
from dotenv import load_dotenv

from docsql.core.config.config_loader import (
    get_search_config,
    get_sandbox_config,
    get_router_config,
)

load_dotenv()


def _get(config: Dict[str, Any], key: str, default: Any) -> Any:
    """Get config value with fallback to default."""
    return config.get(key, default)


class SearchSettings(BaseModel):
    """Hybrid search settings (loaded from the search section).

    rrf_min_score and rerank_min_score live on different scales: RRF scores
    are bounded by 2/(rrf_k+1), reranker scores are in [0, 1].
    """

    top_k: int = Field(
        default_factory=lambda: _get(get_search_config(), "top_k", 5),
        description="Number of candidates returned"
    )
    rrf_k: int = Field(
        default_factory=lambda: _get(get_search_config(), "rrf_k", 60),
        description="Reciprocal rank fusion constant"
    )
    rerank_window: int = Field(
        default_factory=lambda: _get(get_search_config(), "rerank_window", 20),
        description="Fused candidates kept for reranking"
    )
    candidate_pool: int = Field(
        default_factory=lambda: _get(get_search_config(), "candidate_pool", 40),
        description="Candidates fetched from each source"
    )
    vector_threshold: float = Field(
        default_factory=lambda: _get(get_search_config(), "vector_threshold", 0.0),
        description="Minimum cosine similarity for vector hits"
    )
    text_threshold: float = Field(
        default_factory=lambda: _get(get_search_config(), "text_threshold", 0.0),
        description="Minimum full-text rank for lexical hits"
    )
    rrf_min_score: float = Field(
        default_factory=lambda: _get(get_search_config(), "rrf_min_score", 0.0),
        description="Floor for RRF-scale scores (no reranking)"
    )
    rerank_min_score: float = Field(
        default_factory=lambda: _get(get_search_config(), "rerank_min_score", 0.0),
        description="Floor for reranker-scale scores"
    )
    use_reranking: bool = Field(
        default_factory=lambda: _get(get_search_config(), "use_reranking", True),
        description="Rerank fused candidates when a reranker is configured"
    )
    source_timeout_seconds: float = Field(
        default_factory=lambda: _get(get_search_config(), "source_timeout_seconds", 10.0),
        description="Per-source query timeout"
    )
    reranker_model: str = Field(
        default_factory=lambda: _get(get_search_config(), "reranker_model", "base"),
        description="Reranker model alias or HuggingFace path"
    )


class SandboxSettings(BaseModel):
    """SQL sandbox settings (loaded from the sandbox section)."""

    row_limit: int = Field(
        default_factory=lambda: _get(get_sandbox_config(), "row_limit", 1000),
        description="Maximum rows returned per query"
    )
    preview_row_limit: int = Field(
        default_factory=lambda: _get(get_sandbox_config(), "preview_row_limit", 100),
        description="Maximum rows for table previews"
    )
    preview_default_rows: int = Field(
        default_factory=lambda: _get(get_sandbox_config(), "preview_default_rows", 10),
        description="Default rows for table previews"
    )
    statement_timeout_ms: int = Field(
        default_factory=lambda: _get(get_sandbox_config(), "statement_timeout_ms", 5000),
        description="Per-statement timeout"
    )
    client_timeout_grace_ms: int = Field(
        default_factory=lambda: _get(get_sandbox_config(), "client_timeout_grace_ms", 1000),
        description="Extra time the client backstop allows past the server timeout"
    )
    pool_size: int = Field(
        default_factory=lambda: _get(get_sandbox_config(), "pool_size", 5),
        description="Maximum concurrent connections per profile"
    )
    connect_timeout_seconds: int = Field(
        default_factory=lambda: _get(get_sandbox_config(), "connect_timeout_seconds", 10),
        description="Connection establish timeout"
    )
    idle_client_timeout_seconds: float = Field(
        default_factory=lambda: _get(get_sandbox_config(), "idle_client_timeout_seconds", 30),
        description="Pooled client idle time before it is replaced"
    )
    pool_queue_timeout_seconds: float = Field(
        default_factory=lambda: _get(get_sandbox_config(), "pool_queue_timeout_seconds", 30),
        description="Time a request waits for a free pooled connection"
    )
    max_idle_seconds: float = Field(
        default_factory=lambda: _get(get_sandbox_config(), "max_idle_seconds", 600),
        description="Unused pool lifetime before the sweep evicts it"
    )
    sweep_interval_seconds: float = Field(
        default_factory=lambda: _get(get_sandbox_config(), "sweep_interval_seconds", 60),
        description="Idle pool sweep interval"
    )
    shutdown_drain_seconds: float = Field(
        default_factory=lambda: _get(get_sandbox_config(), "shutdown_drain_seconds", 5),
        description="Time allowed for the sweep thread to stop"
    )
    max_concurrent_queries: int = Field(
        default_factory=lambda: _get(get_sandbox_config(), "max_concurrent_queries", 16),
        description="Worker threads running sandboxed statements"
    )
    log_excerpt_chars: int = Field(
        default_factory=lambda: _get(get_sandbox_config(), "log_excerpt_chars", 200),
        description="Maximum query characters written to logs"
    )
    schema_cache_ttl_seconds: int = Field(
        default_factory=lambda: _get(get_sandbox_config(), "schema_cache_ttl_seconds", 300),
        description="Schema context cache lifetime"
    )
    encryption_key: str | None = Field(
        default_factory=lambda: os.getenv("DSN_ENCRYPTION_KEY"),
        description="Base64 256-bit master key for stored DSNs"
    )


class RouterSettings(BaseModel):
    """Agent router settings (loaded from the router section)."""

    history_turns: int = Field(
        default_factory=lambda: _get(get_router_config(), "history_turns", 6),
        description="Conversation turns considered per decision"
    )
    evidence_only: bool = Field(
        default_factory=lambda: _get(get_router_config(), "evidence_only", False),
        description="Default for evidence-only mode"
    )


class DocSQLSettings(BaseModel):
    search: SearchSettings = Field(default_factory=SearchSettings)
    sandbox: SandboxSettings = Field(default_factory=SandboxSettings)
    router: RouterSettings = Field(default_factory=RouterSettings)


@lru_cache(maxsize=1)
def get_settings() -> DocSQLSettings:
    """Get singleton DocSQLSettings instance. Use this instead of DocSQLSettings()."""
    return DocSQLSettings()
