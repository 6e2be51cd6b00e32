"""
LLM-backed natural-language to SQL generation.

Generated SQL is only a candidate: it still goes through the validator and
the sandbox executor before anything runs.
"""

import json
import logging
import re
from typing import List

from llama_index.core.llms.llm import LLM

from docsql.core.interfaces.routing import ConversationTurn, NLToSQLGenerator
from docsql.core.prompt.sql_prompts import SQL_GENERATION_PROMPT, format_history
from docsql.core.sql_sandbox.types import GeneratedSQL, SchemaContext

logger = logging.getLogger(__name__)

_DIALECT_NAMES = {
    "postgresql": "PostgreSQL",
    "mysql": "MySQL",
    "sqlite": "SQLite",
}
_CONFIDENCE_WORDS = {"high": 0.9, "medium": 0.6, "low": 0.3}


class LLMQueryGenerator(NLToSQLGenerator):
    """Generate SQL with a LlamaIndex LLM and a JSON response contract."""

    def __init__(self, llm: LLM, max_history_turns: int = 6):
        """Initialize generator.

        Args:
            llm: LlamaIndex LLM used for completion
            max_history_turns: Turns of history included in the prompt
        """
        self._llm = llm
        self._max_history_turns = max_history_turns

    def generate(
        self,
        utterance: str,
        schema_context: SchemaContext,
        history: List[ConversationTurn],
    ) -> GeneratedSQL:
        prompt = SQL_GENERATION_PROMPT.format(
            dialect=_DIALECT_NAMES.get(schema_context.database_type, "SQL"),
            schema=schema_context.format_for_prompt(),
            history=format_history(history[-self._max_history_turns:]),
            question=utterance,
        )
        response = self._llm.complete(prompt)
        return self.parse_response(response.text.strip())

    @staticmethod
    def parse_response(text: str) -> GeneratedSQL:
        """Parse the LLM response into GeneratedSQL.

        Accepts a JSON object (optionally inside a code fence); falls back to a
        fenced ```sql block, then to the raw text when it looks like a query.
        """
        json_match = re.search(r'\{[\s\S]*\}', text)
        if json_match:
            try:
                data = json.loads(json_match.group())
            except json.JSONDecodeError as e:
                logger.warning(f"Invalid JSON in SQL generation response: {e}")
            else:
                return GeneratedSQL(
                    sql=_strip_terminator(str(data.get("sql") or "")),
                    explanation=str(data.get("explanation") or ""),
                    confidence=_parse_confidence(data.get("confidence")),
                    needs_clarification=bool(data.get("needs_clarification", False)),
                    clarification_question=data.get("clarification_question"),
                )

        match = re.search(r'```(?:sql)?\s*(.*?)\s*```', text, re.DOTALL)
        if match:
            return GeneratedSQL(
                sql=_strip_terminator(match.group(1)),
                explanation="Generated from natural language query",
                confidence=0.5,
            )

        if re.match(r'^\s*(SELECT|WITH)\b', text, re.IGNORECASE):
            return GeneratedSQL(sql=_strip_terminator(text), confidence=0.4)

        logger.warning("SQL generation response contained no query")
        return GeneratedSQL(
            sql="",
            needs_clarification=True,
            clarification_question="Could you rephrase the question in terms of the available tables?",
        )


def _strip_terminator(sql: str) -> str:
    return sql.strip().rstrip(";").strip()


def _parse_confidence(value) -> float:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _CONFIDENCE_WORDS:
            return _CONFIDENCE_WORDS[lowered]
        try:
            value = float(lowered)
        except ValueError:
            return 0.0
    if isinstance(value, (int, float)):
        return max(0.0, min(1.0, float(value)))
    return 0.0
