"""Prompts for natural-language to SQL generation."""

from typing import List

from docsql.core.interfaces.routing import ConversationTurn


SQL_GENERATION_PROMPT = """You are an expert {dialect} query generator. Convert the user's question into a single read-only SQL query.

## Rules:
- Generate ONLY one SELECT statement (read-only)
- NEVER generate INSERT, UPDATE, DELETE, DROP, ALTER, CREATE, TRUNCATE or other write operations
- Use only tables and columns from the schema below
- Qualify column names with table names when joining
- Use aggregate functions (COUNT, SUM, AVG, ...) when the question asks for totals or counts
- Do not end the query with a semicolon
- If the question refers back to earlier results ("them", "those"), use the conversation to resolve what it means
- If the question cannot be answered from the schema or is ambiguous, set needs_clarification to true and ask one short question

## Schema:
{schema}

## Recent Conversation:
{history}

## User Question:
{question}

## Response Format:
{{
  "sql": "SELECT ...",
  "explanation": "Brief explanation of what the query does",
  "confidence": 0.0 to 1.0,
  "needs_clarification": false,
  "clarification_question": null
}}

Respond with JSON only:"""


def format_history(history: List[ConversationTurn], max_chars: int = 500) -> str:
    """Render recent turns one per line, trimming long messages."""
    if not history:
        return "(none)"
    lines = []
    for turn in history:
        content = turn.content.strip()
        if len(content) > max_chars:
            content = content[:max_chars] + "..."
        lines.append(f"{turn.role}: {content}")
    return "\n".join(lines)
