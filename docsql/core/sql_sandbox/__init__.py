"""SQL sandbox: credential vault, pool registry, validator and executor."""

from .types import (
    ConnectionProfile,
    ColumnInfo,
    TableInfo,
    SchemaContext,
    ValidationResult,
    QueryPlan,
    ExecutionResult,
    GeneratedSQL,
)
from .encryption import CredentialVault, to_sqlalchemy_url
from .validators import QueryValidator
from .connection import PoolRegistry, PooledConnection
from .executor import SandboxExecutor, apply_row_limit
from .schema import SchemaIntrospector
from .profiles import ProfileStore

__all__ = [
    "ConnectionProfile",
    "ColumnInfo",
    "TableInfo",
    "SchemaContext",
    "ValidationResult",
    "QueryPlan",
    "ExecutionResult",
    "GeneratedSQL",
    "CredentialVault",
    "to_sqlalchemy_url",
    "QueryValidator",
    "PoolRegistry",
    "PooledConnection",
    "SandboxExecutor",
    "apply_row_limit",
    "SchemaIntrospector",
    "ProfileStore",
]
