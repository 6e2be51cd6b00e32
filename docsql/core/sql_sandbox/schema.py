"""
Schema introspection for NL->SQL context.

Reads tables and columns of a profile's database through its pooled
connection and caches the result per (owner, profile).
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import inspect

from docsql.core.sql_sandbox.connection import PoolRegistry
from docsql.core.sql_sandbox.types import (
    ColumnInfo,
    ConnectionProfile,
    SchemaContext,
    TableInfo,
)

logger = logging.getLogger(__name__)


class SchemaIntrospector:
    """Extract and cache database schemas for LLM prompts."""

    def __init__(self, pool_registry: PoolRegistry, cache_ttl_seconds: Optional[int] = None):
        """Initialize schema introspector.

        Args:
            pool_registry: Registry used to reach the profile's database
            cache_ttl_seconds: Cache TTL in seconds (default from settings)
        """
        if cache_ttl_seconds is None:
            from docsql.setting import get_settings
            cache_ttl_seconds = get_settings().sandbox.schema_cache_ttl_seconds

        self._registry = pool_registry
        self._cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self._cache: Dict[Tuple[str, str], SchemaContext] = {}
        self._lock = threading.Lock()

    def get_schema_context(self, profile: ConnectionProfile, force_refresh: bool = False) -> SchemaContext:
        """Return tables and columns for a profile.

        Args:
            profile: Connection profile
            force_refresh: Skip the cache

        Returns:
            SchemaContext
        """
        key = (profile.owner_id, profile.id)
        if not force_refresh:
            with self._lock:
                cached = self._cache.get(key)
            if cached is not None and datetime.utcnow() - cached.cached_at < self._cache_ttl:
                logger.debug(f"Using cached schema for profile {profile.id}")
                return cached

        tables: List[TableInfo] = []
        with self._registry.connection(profile) as conn:
            inspector = inspect(conn)
            for table_name in inspector.get_table_names():
                pk_columns = set(
                    inspector.get_pk_constraint(table_name).get('constrained_columns') or []
                )
                columns = [
                    ColumnInfo(
                        name=col['name'],
                        type=str(col['type']),
                        nullable=col.get('nullable', True),
                        primary_key=col['name'] in pk_columns,
                    )
                    for col in inspector.get_columns(table_name)
                ]
                tables.append(TableInfo(name=table_name, columns=columns))
            conn.rollback()

        context = SchemaContext(
            tables=tables,
            database_type=profile.db_type,
            cached_at=datetime.utcnow(),
        )
        with self._lock:
            self._cache[key] = context
        logger.info(f"Schema introspected for profile {profile.id}: {len(tables)} tables")
        return context

    def clear_cache(self, profile: Optional[ConnectionProfile] = None) -> None:
        with self._lock:
            if profile is None:
                self._cache.clear()
            else:
                self._cache.pop((profile.owner_id, profile.id), None)
