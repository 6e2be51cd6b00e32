"""
Sandboxed query executor.

Runs validated, read-only SQL against user-owned databases with:
- Row caps (LIMIT rewrite plus a bounded fetch)
- A server-side statement timeout and a client-side backstop
- Read-only sessions and auto-rollback
- Connection release on every exit path
"""

import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Callable, List, Optional

from sqlalchemy import exc
from sqlalchemy.engine import Connection

from docsql.core.exceptions import ConnectivityError, QueryTimeoutError
from docsql.core.observability import describe_error, truncate_query
from docsql.core.sql_sandbox.connection import PoolRegistry
from docsql.core.sql_sandbox.types import (
    ColumnInfo,
    ConnectionProfile,
    ExecutionResult,
    QueryPlan,
)
from docsql.core.sql_sandbox.validators import QueryValidator

logger = logging.getLogger(__name__)

# LIMIT n | LIMIT ALL | MySQL LIMIT offset, n
_LIMIT_PATTERN = re.compile(
    r"\bLIMIT\s+(?:(\d+)\s*,\s*)?(\d+|ALL)\b",
    re.IGNORECASE
)
# Quoted strings and identifiers, line comments, block comments
_LITERAL_PATTERN = re.compile(
    r"'(?:[^'\\]|\\.|'')*'|\"(?:[^\"\\]|\\.|\"\")*\"|`[^`]*`|--[^\n]*|/\*.*?\*/",
    re.DOTALL
)
_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*(\.[A-Za-z_][A-Za-z0-9_$]*)?$")
_TIMEOUT_MARKERS = (
    "statement timeout",
    "canceling statement",
    "max_execution_time",
    "maximum statement execution time",
    "interrupted",
)


def _mask_literals(sql: str) -> str:
    """Blank out quoted text and comments, keeping every offset in place."""
    def blank(match):
        token = match.group()
        return ("_" if token[0] in "'\"`" else " ") * len(token)
    return _LITERAL_PATTERN.sub(blank, sql)


def apply_row_limit(sql: str, row_limit: int) -> str:
    """Cap the rows a SELECT can return.

    Keeps an outermost LIMIT at or below the cap, lowers one above the cap,
    and appends one when absent. A trailing terminator stays at the end.
    LIMIT text inside string literals or comments is ignored.
    Applying it twice gives the same result as applying it once.

    Args:
        sql: SELECT statement
        row_limit: Maximum rows

    Returns:
        Rewritten SQL
    """
    stripped = sql.strip()
    masked = _mask_literals(stripped)
    terminator = ""
    if masked.endswith(";"):
        stripped = stripped.rstrip(";").rstrip()
        masked = masked[:len(stripped)]
        terminator = ";"

    outer = None
    for match in _LIMIT_PATTERN.finditer(masked):
        prefix = masked[:match.start()]
        if prefix.count("(") == prefix.count(")"):
            outer = match

    if outer is not None:
        offset, value = outer.group(1), outer.group(2)
        if value.upper() != "ALL" and int(value) <= row_limit:
            return f"{stripped}{terminator}"
        replacement = f"LIMIT {offset}, {row_limit}" if offset else f"LIMIT {row_limit}"
        return f"{stripped[:outer.start()]}{replacement}{stripped[outer.end():]}{terminator}"

    # A trailing line comment would swallow an appended clause
    trailing_comment = any(
        m.group().startswith("--") and m.end() == len(stripped)
        for m in _LITERAL_PATTERN.finditer(stripped)
    )
    separator = "\n" if trailing_comment else " "
    return f"{stripped}{separator}LIMIT {row_limit}{terminator}"


class _StatementHandle:
    """Shares the running DBAPI connection with the caller waiting on it."""

    def __init__(self):
        self.dbapi_connection = None
        self.abandoned = False
        self.started = threading.Event()
        self.lock = threading.Lock()

    def attach(self, dbapi_connection) -> bool:
        """Record the checked-out connection; False if the caller stopped waiting."""
        with self.lock:
            if self.abandoned:
                return False
            self.dbapi_connection = dbapi_connection
        self.started.set()
        return True

    def detach(self) -> None:
        with self.lock:
            self.dbapi_connection = None

    def abandon(self) -> None:
        with self.lock:
            self.abandoned = True

    def cancel(self) -> None:
        # The lock is held across the call: detach() waits, so the connection
        # cannot go back to the pool and be reused before it is interrupted
        with self.lock:
            dbapi = self.dbapi_connection
            if dbapi is None:
                return
            # psycopg2 exposes cancel(), sqlite3 exposes interrupt()
            for method_name in ("cancel", "interrupt"):
                method = getattr(dbapi, method_name, None)
                if method is not None:
                    try:
                        method()
                    except Exception as e:
                        logger.warning(f"Failed to cancel running statement: {describe_error(e)}")
                    return
            logger.warning("Driver does not support cancelling a running statement")


class SandboxExecutor:
    """Execute read-only queries against connection profiles.

    Validation failures and execution failures come back as
    ExecutionResult(success=False). DecryptionError propagates: a profile
    whose credentials cannot be decrypted is unusable.
    """

    def __init__(
        self,
        pool_registry: PoolRegistry,
        validator: Optional[QueryValidator] = None,
        row_limit: Optional[int] = None,
        statement_timeout_ms: Optional[int] = None,
        client_timeout_grace_ms: Optional[int] = None,
        max_workers: Optional[int] = None,
        log_excerpt_chars: Optional[int] = None,
    ):
        """Initialize executor.

        Args:
            pool_registry: Registry providing pooled connections
            validator: Read-only validator (default QueryValidator())
            row_limit: Maximum rows per query
            statement_timeout_ms: Per-statement timeout
            client_timeout_grace_ms: Extra wait before the client backstop fires
            max_workers: Threads running statements
            log_excerpt_chars: Query characters kept in log lines
        """
        from docsql.setting import get_settings
        settings = get_settings().sandbox

        self._registry = pool_registry
        self._validator = validator or QueryValidator()
        self.row_limit = row_limit or settings.row_limit
        self.statement_timeout_ms = statement_timeout_ms or settings.statement_timeout_ms
        self._grace_ms = (
            client_timeout_grace_ms if client_timeout_grace_ms is not None
            else settings.client_timeout_grace_ms
        )
        self._excerpt_chars = log_excerpt_chars or settings.log_excerpt_chars
        self._preview_max = settings.preview_row_limit
        self._preview_default = settings.preview_default_rows
        self._workers = ThreadPoolExecutor(
            max_workers=max_workers or settings.max_concurrent_queries,
            thread_name_prefix="docsql-sql",
        )

    def execute_query(
        self,
        profile: ConnectionProfile,
        sql: str,
        row_limit: Optional[int] = None,
        timeout_ms: Optional[int] = None,
    ) -> ExecutionResult:
        """Validate, cap and run one statement.

        Args:
            profile: Connection profile to run against
            sql: Caller-supplied SQL
            row_limit: Override of the row cap
            timeout_ms: Override of the statement timeout

        Returns:
            ExecutionResult
        """
        start = time.perf_counter()
        cap = row_limit or self.row_limit
        timeout_ms = timeout_ms or self.statement_timeout_ms

        validation = self._validator.validate(sql, dialect=profile.db_type)
        if not validation.is_valid:
            logger.warning(
                f"Rejected query for profile {profile.id} (owner {profile.owner_id}): "
                f"{'; '.join(validation.errors)} | query={truncate_query(sql, self._excerpt_chars)}"
            )
            return ExecutionResult(
                success=False,
                query=sql,
                error=f"Query validation failed: {'; '.join(validation.errors)}",
                elapsed_ms=self._elapsed_ms(start),
                validation=validation,
            )

        rewritten = sql.strip()
        if validation.statement_kind == "select":
            rewritten = apply_row_limit(rewritten, cap)
        plan = QueryPlan(
            raw_sql=sql,
            statement_kind=validation.statement_kind,
            referenced_tables=validation.referenced_tables,
            rewritten_sql=rewritten,
            row_limit=cap,
        )

        try:
            rows, columns = self._run_with_backstop(profile, plan, timeout_ms)
        except ConnectivityError as e:
            return self._failure(profile, plan, validation, e.message, start)
        except exc.SQLAlchemyError as e:
            message = describe_error(e)
            if any(marker in message.lower() for marker in _TIMEOUT_MARKERS):
                message = f"Query timed out after {timeout_ms}ms"
            return self._failure(profile, plan, validation, message, start)

        elapsed = self._elapsed_ms(start)
        logger.debug(
            f"Query for profile {profile.id} returned {len(rows)} row(s) in {elapsed:.1f}ms"
        )
        return ExecutionResult(
            success=True,
            query=plan.rewritten_sql,
            rows=rows,
            row_count=len(rows),
            columns=columns,
            elapsed_ms=elapsed,
            limited=len(rows) >= cap,
            plan=plan,
            validation=validation,
        )

    def execute_queries(self, profile: ConnectionProfile, queries: List[str], **kwargs) -> List[ExecutionResult]:
        """Run statements in order, stopping after the first failure."""
        results: List[ExecutionResult] = []
        for sql in queries:
            result = self.execute_query(profile, sql, **kwargs)
            results.append(result)
            if not result.success:
                break
        return results

    def test_connection(self, profile: ConnectionProfile) -> ExecutionResult:
        """Round-trip a trivial query through the full sandbox path."""
        return self.execute_query(profile, "SELECT 1 AS test")

    def preview_table(self, profile: ConnectionProfile, table_name: str, limit: Optional[int] = None) -> ExecutionResult:
        """Return the first rows of a table (at most preview_row_limit)."""
        if not _IDENTIFIER_PATTERN.match(table_name or ""):
            return ExecutionResult(
                success=False,
                query=f"SELECT * FROM {table_name}",
                error=f"Invalid table name: {table_name!r}",
            )
        rows = min(limit or self._preview_default, self._preview_max)
        return self.execute_query(profile, f"SELECT * FROM {table_name} LIMIT {rows}", row_limit=rows)

    def get_table_row_count(self, profile: ConnectionProfile, table_name: str) -> Optional[int]:
        """Count rows in a table.

        Returns:
            Row count, or None if the table name is invalid or the query failed
        """
        if not _IDENTIFIER_PATTERN.match(table_name or ""):
            logger.warning(f"Invalid table name for row count on profile {profile.id}")
            return None
        result = self.execute_query(profile, f"SELECT COUNT(*) AS row_count FROM {table_name}")
        if not result.success or not result.rows:
            return None
        return int(result.rows[0]["row_count"])

    def _run_with_backstop(self, profile: ConnectionProfile, plan: QueryPlan, timeout_ms: int):
        handle = _StatementHandle()
        future = self._workers.submit(self._run_statement, profile, plan, timeout_ms, handle)
        future.add_done_callback(lambda _: handle.started.set())
        statement_wait = (timeout_ms + self._grace_ms) / 1000.0

        # Time spent queued for a worker or a pool slot is not statement time
        checkout_wait = self._registry.checkout_timeout + statement_wait
        if not handle.started.wait(checkout_wait):
            handle.abandon()
            handle.cancel()
            future.cancel()
            raise ConnectivityError(
                f"No free connection for profile {profile.id} within {checkout_wait:.0f}s"
            )

        try:
            return future.result(timeout=statement_wait)
        except FutureTimeout:
            # The worker's connection context releases the connection once
            # the cancelled statement returns
            handle.abandon()
            handle.cancel()
            raise QueryTimeoutError(timeout_ms)

    def _run_statement(self, profile: ConnectionProfile, plan: QueryPlan, timeout_ms: int, handle: _StatementHandle):
        with self._registry.connection(profile) as conn:
            if not handle.attach(conn.connection.dbapi_connection):
                logger.info(f"Skipping statement for profile {profile.id}: caller stopped waiting")
                return [], []
            try:
                clear_session = self._prepare_session(conn, profile.db_type, timeout_ms)
                try:
                    # no_parameters keeps the DBAPI from treating % as a placeholder
                    result = conn.exec_driver_sql(
                        plan.rewritten_sql, execution_options={"no_parameters": True}
                    )
                    columns = self._extract_column_info(result)
                    rows = [dict(row._mapping) for row in result.fetchmany(plan.row_limit)] if result.returns_rows else []
                    result.close()
                finally:
                    if clear_session is not None:
                        clear_session()
            finally:
                handle.detach()
                # Never commit
                conn.rollback()
        return rows, columns

    @staticmethod
    def _prepare_session(conn: Connection, db_type: str, timeout_ms: int) -> Optional[Callable[[], None]]:
        """Make the session read-only and apply the server-side timeout.

        Returns:
            Cleanup callable for settings held on the DBAPI connection, if any
        """
        if db_type == "postgresql":
            conn.exec_driver_sql("SET TRANSACTION READ ONLY")
            conn.exec_driver_sql(f"SET statement_timeout = {int(timeout_ms)}")
            return None

        if db_type == "mysql":
            conn.exec_driver_sql("SET SESSION TRANSACTION READ ONLY")
            conn.exec_driver_sql(f"SET SESSION MAX_EXECUTION_TIME = {int(timeout_ms)}")
            return None

        if db_type == "sqlite":
            conn.exec_driver_sql("PRAGMA query_only = ON")
            dbapi = conn.connection.dbapi_connection
            deadline = time.monotonic() + timeout_ms / 1000.0
            # Non-zero return aborts the statement with "interrupted"
            dbapi.set_progress_handler(lambda: int(time.monotonic() > deadline), 1000)
            return lambda: dbapi.set_progress_handler(None, 0)

        return None

    @staticmethod
    def _extract_column_info(result: Any) -> List[ColumnInfo]:
        if not result.returns_rows:
            return []
        description = result.cursor.description if result.cursor is not None else None
        type_codes = {desc[0]: desc[1] for desc in description or []}
        columns = []
        for name in result.keys():
            type_code = type_codes.get(name)
            if type_code is None:
                type_name = "unknown"
            else:
                type_name = type_code.__name__ if hasattr(type_code, "__name__") else str(type_code)
            columns.append(ColumnInfo(name=name, type=type_name))
        return columns

    def _failure(self, profile, plan, validation, message: str, start: float) -> ExecutionResult:
        logger.error(
            f"Query execution failed for profile {profile.id} (owner {profile.owner_id}): "
            f"{message} | query={truncate_query(plan.rewritten_sql, self._excerpt_chars)}"
        )
        return ExecutionResult(
            success=False,
            query=plan.rewritten_sql,
            error=message,
            elapsed_ms=self._elapsed_ms(start),
            plan=plan,
            validation=validation,
        )

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000

    def close(self) -> None:
        """Stop accepting statements; running ones finish or time out."""
        self._workers.shutdown(wait=False)
