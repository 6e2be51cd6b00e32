"""Logging configuration and log-safe formatting helpers."""

import logging
import re
import sys

# scheme://user:password@  ->  scheme://***@
_CREDENTIAL_PATTERN = re.compile(r"([a-zA-Z][a-zA-Z0-9+.\-]*://)[^\s/@]+@")
_WHITESPACE = re.compile(r"\s+")


def setup_logging(log_level: str = "INFO") -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.ERROR)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("sentence_transformers").setLevel(logging.WARNING)
    logging.getLogger("psycopg2").setLevel(logging.WARNING)


def mask_secrets(text: str) -> str:
    """Replace credentials embedded in URLs with ***.

    Args:
        text: Arbitrary message, e.g. a driver error

    Returns:
        Text with every ``scheme://user:pass@`` reduced to ``scheme://***@``
    """
    if not text:
        return text
    return _CREDENTIAL_PATTERN.sub(r"\1***@", text)


def truncate_query(sql: str, max_chars: int = 200) -> str:
    """Collapse whitespace and cut a query down to a loggable excerpt."""
    if not sql:
        return ""
    excerpt = _WHITESPACE.sub(" ", sql).strip()
    if len(excerpt) > max_chars:
        excerpt = excerpt[:max_chars] + "..."
    return mask_secrets(excerpt)


def describe_error(error: Exception) -> str:
    """First line of a (driver) error with any credentials masked.

    SQLAlchemy wraps DBAPI errors and appends the statement and parameters;
    only the driver's own message is kept.
    """
    orig = getattr(error, "orig", None)
    message = str(orig) if orig is not None else str(error)
    message = message.strip()
    first_line = message.splitlines()[0] if message else type(error).__name__
    return mask_secrets(first_line)
