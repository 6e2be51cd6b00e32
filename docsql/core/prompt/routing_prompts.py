"""Prompt for LLM intent classification (which evidence sources to consult)."""


INTENT_CLASSIFICATION_PROMPT = """You decide which data sources can answer a user's message.

## Available Sources:
- documents: {has_documents} (uploaded text documents, searched by meaning and keywords)
- tables: {has_tables} (structured tables, queried with SQL)

## Recent Conversation:
{history}

## User Message:
{utterance}

## Instructions:
- use_search: true when the answer is likely in the documents (explanations, descriptions, summaries, quotes)
- use_sandbox: true when the answer needs counting, filtering, aggregating or listing rows from tables
- Both may be true. Never select a source that is not available.
- Follow-up messages such as "list them" or "show those" continue the previous topic.

## Response Format:
{{
  "use_search": true | false,
  "use_sandbox": true | false,
  "reasoning": "Brief explanation",
  "confidence": 0.0 to 1.0
}}

Respond with JSON only:"""
