"""
Connection pool registry for user-owned databases.

Pools are keyed by (owner_id, profile_id) so a pooled connection is never
shared across owners. Each pool is created lazily, probed with a trivial
query before it is trusted, and evicted by a background sweep once it has
been unused for longer than the max-idle window.
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import create_engine, event, exc, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import QueuePool

from docsql.core.exceptions import ConnectivityError, ValidationError
from docsql.core.observability import describe_error
from docsql.core.sql_sandbox.encryption import CredentialVault, to_sqlalchemy_url
from docsql.core.sql_sandbox.types import ConnectionProfile

logger = logging.getLogger(__name__)

PoolKey = Tuple[str, str]


@dataclass
class PooledConnection:
    """A profile's engine plus usage bookkeeping."""
    profile_id: str
    owner_id: str
    display_name: str
    engine: Engine
    last_used_at: float
    open_count: int = 0
    active: int = 0
    created_at: float = field(default_factory=time.monotonic)


class PoolRegistry:
    """Injectable registry of per-profile connection pools.

    Lifecycle: create, optionally start() the idle sweep, and close_all() at
    shutdown (or use as a context manager).

    Pool limits per profile:
    - pool_size concurrent connections, excess checkouts queue for
      pool_queue_timeout seconds
    - connect_timeout for establishing a connection
    - pooled clients idle longer than idle_client_timeout are replaced on checkout
    """

    def __init__(
        self,
        vault: CredentialVault,
        pool_size: Optional[int] = None,
        connect_timeout: Optional[int] = None,
        idle_client_timeout: Optional[float] = None,
        pool_queue_timeout: Optional[float] = None,
        max_idle: Optional[float] = None,
        sweep_interval: Optional[float] = None,
        shutdown_drain: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize registry.

        Args:
            vault: Credential vault used to decrypt profile DSNs
            pool_size: Max concurrent connections per profile
            connect_timeout: Seconds allowed to establish a connection
            idle_client_timeout: Seconds a pooled client may sit idle
            pool_queue_timeout: Seconds a checkout waits for a free connection
            max_idle: Seconds a whole pool may go unused before eviction
            sweep_interval: Seconds between idle sweeps
            shutdown_drain: Seconds close_all() waits for the sweep thread
            clock: Monotonic time source
        """
        from docsql.setting import get_settings
        settings = get_settings().sandbox

        self._vault = vault
        self._pool_size = pool_size or settings.pool_size
        self._connect_timeout = connect_timeout or settings.connect_timeout_seconds
        self._idle_client_timeout = idle_client_timeout or settings.idle_client_timeout_seconds
        self._pool_queue_timeout = pool_queue_timeout or settings.pool_queue_timeout_seconds
        self._max_idle = max_idle or settings.max_idle_seconds
        self._sweep_interval = sweep_interval or settings.sweep_interval_seconds
        self._shutdown_drain = shutdown_drain or settings.shutdown_drain_seconds
        self._clock = clock

        self._pools: Dict[PoolKey, PooledConnection] = {}
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the background idle-pool sweep."""
        if self._sweeper is not None and self._sweeper.is_alive():
            logger.warning("Pool sweep already running")
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="docsql-pool-sweep", daemon=True
        )
        self._sweeper.start()
        logger.info(f"Pool sweep started (interval={self._sweep_interval}s, max_idle={self._max_idle}s)")

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self._sweep_interval):
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Idle pool sweep failed: {e}")

    def sweep(self) -> List[PoolKey]:
        """Close and evict pools unused beyond the max-idle window.

        Pools with checked-out connections are never evicted.

        Returns:
            Keys of evicted pools
        """
        now = self._clock()
        evicted: List[PooledConnection] = []
        with self._lock:
            for key, pooled in list(self._pools.items()):
                if pooled.active == 0 and now - pooled.last_used_at > self._max_idle:
                    evicted.append(self._pools.pop(key))

        for pooled in evicted:
            pooled.engine.dispose()
            logger.info(
                f"Evicted idle pool for profile {pooled.profile_id} (owner {pooled.owner_id})"
            )
        return [(p.owner_id, p.profile_id) for p in evicted]

    @property
    def checkout_timeout(self) -> float:
        """Longest a checkout may take: pool creation plus the queue wait."""
        return self._connect_timeout + self._pool_queue_timeout

    def get_pool(self, profile: ConnectionProfile) -> Engine:
        """Return the cached engine for a profile, creating and probing it on first use.

        Raises:
            DecryptionError: If the stored DSN cannot be decrypted
            ConnectivityError: If the pool cannot be created or fails its probe
        """
        return self._acquire(profile, reserve=False).engine

    @contextmanager
    def connection(self, profile: ConnectionProfile) -> Iterator[Connection]:
        """Check out a pooled connection; it is released on every exit path."""
        pooled = self._acquire(profile, reserve=True)
        try:
            try:
                conn = pooled.engine.connect()
            except exc.TimeoutError as e:
                raise ConnectivityError(
                    f"No free connection for profile {profile.id} within {self._pool_queue_timeout}s"
                ) from e
            except exc.SQLAlchemyError as e:
                raise ConnectivityError(
                    f"Failed to connect for profile {profile.id}: {describe_error(e)}"
                ) from e
            with conn:
                yield conn
        finally:
            with self._lock:
                pooled.active -= 1
                pooled.last_used_at = self._clock()

    def _acquire(self, profile: ConnectionProfile, reserve: bool) -> PooledConnection:
        key = (profile.owner_id, profile.id)
        with self._lock:
            pooled = self._pools.get(key)
            if pooled is not None:
                self._touch(pooled, reserve)
                return pooled

        # Engine creation probes the database, so it runs outside the lock
        engine = self._create_engine(profile)

        with self._lock:
            existing = self._pools.get(key)
            if existing is not None:
                engine.dispose()
                pooled = existing
            else:
                pooled = PooledConnection(
                    profile_id=profile.id,
                    owner_id=profile.owner_id,
                    display_name=profile.display_name,
                    engine=engine,
                    last_used_at=self._clock(),
                )
                self._pools[key] = pooled
                logger.info(f"Created pool for profile {profile.id} (owner {profile.owner_id})")
            self._touch(pooled, reserve)
            return pooled

    def _touch(self, pooled: PooledConnection, reserve: bool) -> None:
        pooled.last_used_at = self._clock()
        if reserve:
            pooled.active += 1
            pooled.open_count += 1

    def _create_engine(self, profile: ConnectionProfile) -> Engine:
        dsn = self._vault.decrypt(profile.encrypted_dsn)
        try:
            db_type = self._vault.validate(dsn)
        except ValidationError as e:
            del dsn
            raise ConnectivityError(
                f"Stored connection string for profile {profile.id} is no longer valid: {e.message}"
            ) from e
        url = to_sqlalchemy_url(dsn)

        if db_type == "sqlite":
            connect_args = {"timeout": self._connect_timeout, "check_same_thread": False}
        else:
            connect_args = {"connect_timeout": int(self._connect_timeout)}

        try:
            engine = create_engine(
                url,
                poolclass=QueuePool,
                pool_size=self._pool_size,
                max_overflow=0,
                pool_timeout=self._pool_queue_timeout,
                pool_pre_ping=db_type != "sqlite",
                connect_args=connect_args,
            )
        except (exc.SQLAlchemyError, ImportError, ValueError) as e:
            raise ConnectivityError(
                f"Failed to create pool for profile {profile.id}: {describe_error(e)}"
            ) from e
        finally:
            del dsn

        _install_idle_client_eviction(engine, self._idle_client_timeout, self._clock)

        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except exc.SQLAlchemyError as e:
            engine.dispose()
            logger.warning(f"Connection probe failed for profile {profile.id} (owner {profile.owner_id})")
            raise ConnectivityError(
                f"Connection probe failed for profile {profile.id}: {describe_error(e)}"
            ) from e

        return engine

    def close_pool(self, profile_id: str, owner_id: str) -> bool:
        """Dispose one profile's pool.

        Returns:
            True if a pool existed
        """
        with self._lock:
            pooled = self._pools.pop((owner_id, profile_id), None)
        if pooled is None:
            return False
        pooled.engine.dispose()
        logger.info(f"Closed pool for profile {profile_id} (owner {owner_id})")
        return True

    def close_all(self) -> None:
        """Cancel the sweep (bounded wait) and dispose every pool."""
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=self._shutdown_drain)
            if self._sweeper.is_alive():
                logger.warning("Pool sweep did not stop within the drain window")
            self._sweeper = None

        with self._lock:
            pools = list(self._pools.values())
            self._pools.clear()
        for pooled in pools:
            pooled.engine.dispose()
        logger.info(f"Closed {len(pools)} connection pool(s)")

    def get_stats(self) -> Dict:
        """Snapshot of registered pools."""
        now = self._clock()
        with self._lock:
            pools = [
                {
                    "profile_id": p.profile_id,
                    "owner_id": p.owner_id,
                    "display_name": p.display_name,
                    "idle_seconds": round(now - p.last_used_at, 3),
                    "open_count": p.open_count,
                    "checked_out": p.active,
                    "pool_size": self._pool_size,
                }
                for p in self._pools.values()
            ]
        return {"total_pools": len(pools), "pools": pools}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_all()
        return False


def _install_idle_client_eviction(engine: Engine, idle_seconds: float, clock: Callable[[], float]) -> None:
    """Replace pooled DBAPI connections that sat idle longer than idle_seconds.

    Raising DisconnectionError from a checkout listener makes the pool discard
    the connection and retry with a fresh one.
    """

    @event.listens_for(engine, "checkin")
    def _on_checkin(dbapi_connection, connection_record):
        connection_record.info["checked_in_at"] = clock()

    @event.listens_for(engine, "checkout")
    def _on_checkout(dbapi_connection, connection_record, connection_proxy):
        checked_in_at = connection_record.info.pop("checked_in_at", None)
        if checked_in_at is not None and clock() - checked_in_at > idle_seconds:
            raise exc.DisconnectionError("Pooled connection idle too long")

