"""System prompts and context formatting for answers built on retrieved evidence.

In evidence-only mode the prompt forbids outside knowledge; the refusal for
an empty bundle is handled before any prompt is built.
"""

from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from docsql.core.agents.evidence import EvidenceBundle


STRICT_EVIDENCE_RULES = """**STRICT DATA RULES (EVIDENCE-ONLY MODE):**
You MUST only use information from the retrieved context below. If the data isn't there, say "Not seeing that in the documents" or "The documents don't have that information." Use EXACT data; don't paraphrase, invent, or add plausible details. You may interpret explicit data (e.g., calculate totals, compare values) but not fabricate new entries."""

GENERAL_ASSISTANT_RULES = """Answer accurately and directly. Prefer the retrieved context below when it is relevant, and say when you are going beyond it."""

SYSTEM_PROMPT_TEMPLATE = """You are an assistant helping the user with their documents and data.

{rules}

{context}"""

MAX_ROWS_IN_CONTEXT = 50


def build_system_prompt(bundle: "EvidenceBundle") -> str:
    """Build the answer-generation system prompt for a bundle."""
    rules = STRICT_EVIDENCE_RULES if bundle.evidence_only else GENERAL_ASSISTANT_RULES
    return SYSTEM_PROMPT_TEMPLATE.format(rules=rules, context=format_evidence(bundle))


def format_evidence(bundle: "EvidenceBundle") -> str:
    """Render every evidence item of a bundle as prompt context."""
    from docsql.core.agents.evidence import SandboxEvidence, SearchEvidence

    sections: List[str] = []
    for result in bundle.results:
        if isinstance(result, SearchEvidence) and result.candidates:
            lines = ["**Retrieved Passages:**"]
            for i, candidate in enumerate(result.candidates, 1):
                source = candidate.source_document or "unknown"
                lines.append(f"[{i}] (source: {source}, relevance: {candidate.relevance_score:.3f})\n{candidate.text}")
            sections.append("\n\n".join(lines))
        elif isinstance(result, SandboxEvidence) and result.execution.success:
            execution = result.execution
            header = [
                "**Query Results:**",
                f"SQL: {execution.query}",
                f"Rows: {execution.row_count}{' (limited)' if execution.limited else ''}",
            ]
            rows = [str(row) for row in execution.rows[:MAX_ROWS_IN_CONTEXT]]
            if execution.row_count > MAX_ROWS_IN_CONTEXT:
                rows.append(f"... {execution.row_count - MAX_ROWS_IN_CONTEXT} more rows")
            sections.append("\n".join(header + rows))

    if not sections:
        return "**Retrieved Context:** (none)"
    return "\n\n".join(sections)
