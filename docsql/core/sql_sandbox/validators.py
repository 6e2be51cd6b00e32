"""
SQL read-only validation.

Two independent layers decide whether a statement may run:
- A sqlglot AST pass classifies the statement, rejects anything outside the
  read-only allow-list and looks for write nodes nested anywhere in the tree.
- A whole-word keyword denylist over the raw text, applied regardless of what
  the parser reported, since the parser and the live engine can disagree on
  grammar.

Parse failures are rejections.
"""

import logging
import re
from typing import List, Optional, Tuple

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from docsql.core.constants import ALLOWED_STATEMENT_KINDS, DENYLISTED_KEYWORDS
from docsql.core.sql_sandbox.types import ValidationResult

logger = logging.getLogger(__name__)

# Database type -> sqlglot dialect
SQLGLOT_DIALECTS = {
    'postgresql': 'postgres',
    'mysql': 'mysql',
    'sqlite': 'sqlite',
}

_SET_OPERATION = getattr(exp, "SetOperation", exp.Union)

# Write/DDL node types, looked up by name so older sqlglot releases still work
_WRITE_NODE_TYPES = tuple(
    node_type for node_type in (
        getattr(exp, name, None) for name in (
            "Insert", "Update", "Delete", "Drop", "Create", "Alter", "AlterTable",
            "Merge", "TruncateTable", "Grant", "Revoke", "Copy", "LoadData", "Set",
        )
    )
    if node_type is not None
)

# Leading EXPLAIN options before the target statement
_EXPLAIN_OPTIONS = re.compile(
    r"^\s*(?:(?:ANALYZE|VERBOSE|EXTENDED|QUERY\s+PLAN|FORMAT\s*=?\s*\w+|\([^)]*\))\s+)*",
    re.IGNORECASE
)


class QueryValidator:
    """AST-based read-only enforcement with a keyword denylist backstop.

    Rejects when:
    - the statement kind is outside {select, show, explain, describe}
    - a denylisted keyword appears as a whole word anywhere in the text
    - more than one statement is present
    - a write operation is nested inside the statement (e.g. in a subquery or CTE)
    - the statement does not parse
    """

    def __init__(self, dialect: Optional[str] = None):
        """Initialize validator.

        Args:
            dialect: Default database type (postgresql, mysql, sqlite) or sqlglot
                dialect name used when parsing
        """
        self._dialect = dialect
        self._denylist = re.compile(
            r"\b(" + "|".join(DENYLISTED_KEYWORDS) + r")\b",
            re.IGNORECASE
        )

    def validate(self, sql: str, dialect: Optional[str] = None) -> ValidationResult:
        """Validate a single statement for read-only execution.

        Args:
            sql: Raw SQL text
            dialect: Overrides the validator's default dialect

        Returns:
            ValidationResult with errors, warnings, statement kind and tables
        """
        errors: List[str] = []
        warnings: List[str] = []

        if not sql or not sql.strip():
            return ValidationResult(is_valid=False, errors=["Query is empty"])

        text = sql.strip()

        # Layer 1: denylist over the raw text, independent of parsing
        forbidden = sorted({m.group(1).upper() for m in self._denylist.finditer(text)})
        for keyword in forbidden:
            errors.append(f"Forbidden keyword: {keyword}")

        if self._has_multiple_statements(text):
            errors.append("Multiple statements are not allowed")

        if "--" in text or "/*" in text:
            warnings.append("Query contains SQL comments")

        # Layer 2: AST
        read_dialect = self._resolve_dialect(dialect)
        statement, parse_error = self._parse_single(text, read_dialect)
        if statement is None:
            errors.append(parse_error)
            return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

        kind = self._statement_kind(statement)
        if kind not in ALLOWED_STATEMENT_KINDS:
            errors.append(f"Statement type not allowed: {kind.upper()}")

        errors.extend(self._find_nested_writes(statement))

        if kind == "explain":
            errors.extend(self._validate_explain_target(statement, read_dialect))

        tables = self._extract_tables(statement)

        result = ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            statement_kind=kind,
            referenced_tables=tables,
        )
        if not result.is_valid:
            logger.debug(f"Rejected {kind} statement: {'; '.join(errors)}")
        return result

    def _resolve_dialect(self, dialect: Optional[str]) -> Optional[str]:
        dialect = dialect or self._dialect
        if dialect is None:
            return None
        return SQLGLOT_DIALECTS.get(dialect, dialect)

    @staticmethod
    def _has_multiple_statements(text: str) -> bool:
        """More than one semicolon, or a single one that is not terminal."""
        count = text.count(";")
        if count == 0:
            return False
        if count > 1:
            return True
        return not text.rstrip().endswith(";")

    @staticmethod
    def _parse_single(text: str, dialect: Optional[str]) -> Tuple[Optional[exp.Expression], str]:
        try:
            statements = [s for s in sqlglot.parse(text, read=dialect) if s is not None]
        except SqlglotError as e:
            first_line = str(e).splitlines()[0] if str(e) else type(e).__name__
            return None, f"Failed to parse query: {first_line}"

        if not statements:
            return None, "Query is empty"
        if len(statements) > 1:
            return None, "Multiple statements are not allowed"
        return statements[0], ""

    @staticmethod
    def _statement_kind(statement: exp.Expression) -> str:
        """Map a parsed statement onto a lowercase kind name."""
        if isinstance(statement, exp.Subquery):
            statement = statement.unnest()
        if isinstance(statement, (exp.Select, _SET_OPERATION)):
            return "select"
        if isinstance(statement, exp.Describe):
            return "describe"
        show = getattr(exp, "Show", None)
        if show is not None and isinstance(statement, show):
            return "show"
        if isinstance(statement, exp.Command):
            keyword = str(statement.this or "").strip().lower()
            return "describe" if keyword == "desc" else keyword
        return statement.key

    @staticmethod
    def _find_nested_writes(statement: exp.Expression) -> List[str]:
        errors: List[str] = []
        for node in statement.walk():
            # walk() yields (node, parent, key) on older sqlglot releases
            if isinstance(node, tuple):
                node = node[0]
            if node is statement:
                continue
            if isinstance(node, _WRITE_NODE_TYPES):
                errors.append(f"Write operation detected in query: {node.key.upper()}")
        if statement.find(exp.Into) is not None:
            errors.append("SELECT ... INTO is not allowed")
        return sorted(set(errors))

    def _validate_explain_target(self, statement: exp.Expression, dialect: Optional[str]) -> List[str]:
        """Re-validate the statement after EXPLAIN; it must be a plain SELECT."""
        target = statement.expression
        target_sql = target.name if isinstance(target, exp.Expression) else str(target or "")
        target_sql = _EXPLAIN_OPTIONS.sub("", target_sql, count=1).strip()
        if not target_sql:
            return ["EXPLAIN requires a target statement"]

        inner, parse_error = self._parse_single(target_sql, dialect)
        if inner is None:
            return [f"EXPLAIN target rejected: {parse_error}"]
        if self._statement_kind(inner) != "select":
            return ["EXPLAIN target must be a SELECT"]
        return self._find_nested_writes(inner)

    @staticmethod
    def _extract_tables(statement: exp.Expression) -> List[str]:
        cte_names = {cte.alias_or_name for cte in statement.find_all(exp.CTE)}
        tables: List[str] = []
        for table in statement.find_all(exp.Table):
            name = table.name
            if not name or name in cte_names:
                continue
            qualified = f"{table.db}.{name}" if table.db else name
            if qualified not in tables:
                tables.append(qualified)
        return tables
