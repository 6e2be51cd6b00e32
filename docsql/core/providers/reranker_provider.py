"""Thread-safe semantic reranker backed by LlamaIndex node postprocessors.

The default backend is a local cross-encoder (SentenceTransformerRerank).
Any LlamaIndex postprocessor that reorders NodeWithScore lists can be wrapped.

## Usage

    from docsql.core.providers.reranker_provider import get_shared_reranker

    reranker = get_shared_reranker(model="base")
    scores = reranker.rerank("query", ["doc a", "doc b"], top_n=5)
"""

import logging
import math
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional

from llama_index.core.postprocessor import SentenceTransformerRerank
from llama_index.core.postprocessor.types import BaseNodePostprocessor
from llama_index.core.schema import NodeWithScore, TextNode

from docsql.core.interfaces.retrieval import RerankScore, SemanticReranker

logger = logging.getLogger(__name__)

_reranker_lock = threading.RLock()
_shared_rerankers: Dict[str, "LlamaIndexReranker"] = {}

DEFAULT_LOCAL_MODEL_DIR = "models/rerankers"

MODEL_ALIASES = {
    "base": "mxbai-rerank-base-v1",
    "large": "mxbai-rerank-large-v1",
    "xsmall": "mxbai-rerank-xsmall-v1",
    "disabled": None,
}


def _is_valid_local_model(path: Path) -> bool:
    """Check if a local model directory contains model weights."""
    if not path.exists() or not path.is_dir():
        return False
    model_files = ["pytorch_model.bin", "model.safetensors"]
    return any((path / f).exists() for f in model_files)


def resolve_model_path(model: str) -> Optional[str]:
    """Resolve a model identifier to a local path or HuggingFace ID.

    Priority:
    1. "disabled" resolves to None
    2. Aliases ("base", "large", "xsmall") expand, preferring a local copy
    3. A local path with model files is used as is
    4. Anything else is treated as a HuggingFace model ID

    Args:
        model: Alias, local path, or HuggingFace ID

    Returns:
        Resolved path/ID, or None if disabled
    """
    key = model.strip().lower()
    if key in MODEL_ALIASES:
        alias_value = MODEL_ALIASES[key]
        if alias_value is None:
            return None
        local_path = Path(DEFAULT_LOCAL_MODEL_DIR) / alias_value
        if _is_valid_local_model(local_path):
            logger.info(f"Using local model for alias '{model}': {local_path}")
            return str(local_path)
        return f"mixedbread-ai/{alias_value}"

    return model


class LlamaIndexReranker(SemanticReranker):
    """Adapts a LlamaIndex postprocessor to the SemanticReranker interface.

    Local cross-encoders are not safe for concurrent inference, so calls are
    serialized with a lock. Scores outside [0, 1] (raw logits) are squashed
    with a sigmoid so they share the reranker scale.
    """

    def __init__(self, postprocessor: BaseNodePostprocessor, lock: Optional[threading.Lock] = None):
        self._postprocessor = postprocessor
        self._lock = lock or threading.Lock()

    def rerank(self, query: str, documents: List[str], top_n: int) -> List[RerankScore]:
        if not documents:
            return []

        nodes = [
            NodeWithScore(node=TextNode(text=doc, id_=str(i)), score=0.0)
            for i, doc in enumerate(documents)
        ]

        with self._lock:
            has_top_n = hasattr(self._postprocessor, "top_n")
            original_top_n = self._postprocessor.top_n if has_top_n else None
            if has_top_n:
                self._postprocessor.top_n = top_n
            try:
                ranked = self._postprocessor.postprocess_nodes(nodes, query_str=query)
            finally:
                if has_top_n:
                    self._postprocessor.top_n = original_top_n

        raw = [(int(n.node.node_id), float(n.score or 0.0)) for n in ranked[:top_n]]
        squash = any(score < 0.0 or score > 1.0 for _, score in raw)
        return [
            RerankScore(index=index, relevance_score=_sigmoid(score) if squash else score)
            for index, score in raw
        ]


def _sigmoid(x: float) -> float:
    return 1.0 / (1.0 + math.exp(-x))


def get_shared_reranker(model: Optional[str] = None, top_n: int = 10) -> Optional[LlamaIndexReranker]:
    """Get a shared cross-encoder reranker.

    Environment variables:
    - RERANKER_MODEL: overrides the configured model

    Args:
        model: Alias, local path or HuggingFace ID (default from settings)
        top_n: Default number of results kept by the postprocessor

    Returns:
        LlamaIndexReranker, or None if reranking is disabled
    """
    if model is None:
        from docsql.setting import get_settings
        model = get_settings().search.reranker_model

    env_model = os.getenv("RERANKER_MODEL", "").strip()
    if env_model:
        model = env_model

    effective_model = resolve_model_path(model)
    if effective_model is None:
        logger.info("Reranker disabled via model resolution")
        return None

    with _reranker_lock:
        reranker = _shared_rerankers.get(effective_model)
        if reranker is None:
            logger.info(f"Initializing shared reranker: {effective_model}")
            reranker = LlamaIndexReranker(
                SentenceTransformerRerank(model=effective_model, top_n=top_n)
            )
            _shared_rerankers[effective_model] = reranker
        return reranker
