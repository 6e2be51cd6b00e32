from .sql_prompts import SQL_GENERATION_PROMPT, format_history
from .routing_prompts import INTENT_CLASSIFICATION_PROMPT
from .evidence_prompts import (
    STRICT_EVIDENCE_RULES,
    build_system_prompt,
    format_evidence,
)

__all__ = [
    "SQL_GENERATION_PROMPT",
    "format_history",
    "INTENT_CLASSIFICATION_PROMPT",
    "STRICT_EVIDENCE_RULES",
    "build_system_prompt",
    "format_evidence",
]
