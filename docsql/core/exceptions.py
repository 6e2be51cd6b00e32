"""Domain exceptions for the retrieval core.

Usage:
    from docsql.core.exceptions import ValidationError, DecryptionError

    def create_profile(owner_id, dsn):
        if not dsn:
            raise ValidationError("Connection string is required")

Degraded retrieval and exhausted evidence are not exceptions; they are
reported as RetrievalStatus.DEGRADED on search responses and
EvidenceOutcome.REFUSE on evidence bundles.
"""

from typing import Any, Dict, List, Optional, Union


class DocSQLError(Exception):
    """Base exception for all docsql errors.

    Attributes:
        message: Human-readable error message
        details: Additional error details (optional)
    """

    default_message: str = "An error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured results."""
        result = {
            "success": False,
            "error": self.message
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(DocSQLError):
    """Raised for rejected SQL or a malformed connection string.

    Examples:
        raise ValidationError("Unsupported database scheme")
        raise ValidationError(["Multiple statements", "Forbidden keyword: DROP"])
    """

    default_message = "Validation failed"

    def __init__(
        self,
        message: Optional[Union[str, List[str]]] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if isinstance(message, list):
            message = "; ".join(message)
        super().__init__(message, details)


class ConnectivityError(DocSQLError):
    """Raised when a pool cannot be created, probed or checked out."""

    default_message = "Database connection failed"


class QueryTimeoutError(ConnectivityError):
    """Raised when a statement exceeds its timeout."""

    default_message = "Query timed out"

    def __init__(self, timeout_ms: int, details: Optional[Dict[str, Any]] = None):
        self.timeout_ms = timeout_ms
        super().__init__(f"Query timed out after {timeout_ms}ms", details)


class DecryptionError(DocSQLError):
    """Raised when stored credentials fail authentication or decoding.

    The message never contains plaintext or ciphertext.
    """

    default_message = "Failed to decrypt connection credentials"


class ConfigurationError(DocSQLError):
    """Raised when required configuration (e.g. the master key) is missing or invalid."""

    default_message = "Invalid configuration"


class NotFoundError(DocSQLError):
    """Raised when a requested resource does not exist for the owner.

    Examples:
        raise NotFoundError("Connection profile", profile_id)
    """

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if resource_id:
            message = f"{resource} not found: {resource_id}"
        else:
            message = f"{resource} not found"
        super().__init__(message, details)
        self.resource = resource
        self.resource_id = resource_id
