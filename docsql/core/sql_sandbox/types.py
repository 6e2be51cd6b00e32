"""
Type definitions for the SQL sandbox.

Defines dataclasses for connection profiles, validation results, query plans,
execution results and schema context.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional


# Type aliases
DatabaseType = Literal["postgresql", "mysql", "sqlite"]
StatementKind = Literal["select", "show", "explain", "describe"]


@dataclass
class ConnectionProfile:
    """A user-owned external database connection.

    The DSN is stored encrypted; plaintext only exists transiently inside
    the pool registry while an engine is being created.

    Attributes:
        id: Unique identifier for the profile
        owner_id: Owning user
        display_name: User-friendly name
        encrypted_dsn: base64(salt | iv | tag | ciphertext)
        db_type: Database type derived from the DSN scheme
        created_at: Timestamp when the profile was created
    """
    id: str
    owner_id: str
    display_name: str
    encrypted_dsn: str
    db_type: DatabaseType
    created_at: Optional[datetime] = None

    def __repr__(self) -> str:
        return (
            f"ConnectionProfile(id={self.id!r}, owner_id={self.owner_id!r}, "
            f"display_name={self.display_name!r}, db_type={self.db_type!r})"
        )


@dataclass
class ColumnInfo:
    """Metadata for a result or table column."""
    name: str
    type: str
    nullable: bool = True
    primary_key: bool = False


@dataclass
class TableInfo:
    """Metadata for a database table."""
    name: str
    columns: List[ColumnInfo]
    row_count: Optional[int] = None


@dataclass
class SchemaContext:
    """Schema of a profile's database, as handed to NL->SQL generation."""
    tables: List[TableInfo]
    database_type: DatabaseType
    cached_at: Optional[datetime] = None

    @property
    def table_names(self) -> List[str]:
        return [t.name for t in self.tables]

    def format_for_prompt(self) -> str:
        """Render tables and columns as a compact text block."""
        if not self.tables:
            return "(no tables)"
        lines = [f"Database type: {self.database_type}"]
        for table in self.tables:
            cols = ", ".join(
                f"{c.name} {c.type}{' PK' if c.primary_key else ''}"
                for c in table.columns
            )
            lines.append(f"- {table.name}({cols})")
        return "\n".join(lines)


@dataclass
class ValidationResult:
    """Outcome of read-only validation of a single statement."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    statement_kind: Optional[str] = None
    referenced_tables: List[str] = field(default_factory=list)


@dataclass
class QueryPlan:
    """A validated statement and its row-capped rewrite."""
    raw_sql: str
    statement_kind: StatementKind
    referenced_tables: List[str]
    rewritten_sql: str
    row_limit: int


@dataclass
class ExecutionResult:
    """Result of a sandboxed statement.

    limited is True when row_count reached the row cap, i.e. more rows may
    exist than were returned.
    """
    success: bool
    query: str
    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    columns: List[ColumnInfo] = field(default_factory=list)
    elapsed_ms: float = 0.0
    error: Optional[str] = None
    limited: bool = False
    plan: Optional[QueryPlan] = None
    validation: Optional[ValidationResult] = None

    @property
    def column_count(self) -> int:
        return len(self.columns)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "query": self.query,
            "rows": self.rows,
            "row_count": self.row_count,
            "columns": [{"name": c.name, "type": c.type} for c in self.columns],
            "elapsed_ms": self.elapsed_ms,
            "error": self.error,
            "limited": self.limited,
        }


@dataclass
class GeneratedSQL:
    """Output of an NL->SQL generator."""
    sql: str
    explanation: str = ""
    confidence: float = 0.0
    needs_clarification: bool = False
    clarification_question: Optional[str] = None
