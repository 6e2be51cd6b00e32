"""
Owner-scoped persistence for connection profiles.

Plaintext DSNs are validated and encrypted before they reach the database;
nothing here ever logs or returns a plaintext DSN.
"""

import logging
from typing import List, Optional

from sqlalchemy import select

from docsql.core.db import ConnectionProfileRecord, DatabaseManager
from docsql.core.exceptions import NotFoundError, ValidationError
from docsql.core.sql_sandbox.connection import PoolRegistry
from docsql.core.sql_sandbox.encryption import CredentialVault
from docsql.core.sql_sandbox.types import ConnectionProfile

logger = logging.getLogger(__name__)


class ProfileStore:
    """Create, read, list and delete connection profiles for an owner."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        vault: CredentialVault,
        pool_registry: Optional[PoolRegistry] = None,
    ):
        """Initialize profile store.

        Args:
            db_manager: Metadata database manager
            vault: Vault used to validate and encrypt DSNs
            pool_registry: If given, a deleted profile's pool is closed
        """
        self._db = db_manager
        self._vault = vault
        self._pools = pool_registry

    def create_profile(self, owner_id: str, display_name: str, dsn: str) -> ConnectionProfile:
        """Validate, encrypt and store a new profile.

        Raises:
            ValidationError: If the name is empty or the DSN is rejected
        """
        if not display_name or not display_name.strip():
            raise ValidationError("Display name is required")
        db_type = self._vault.validate(dsn)

        record = ConnectionProfileRecord(
            owner_id=owner_id,
            display_name=display_name.strip(),
            db_type=db_type,
            encrypted_dsn=self._vault.encrypt(dsn.strip()),
        )
        with self._db.get_session() as session:
            session.add(record)
            session.flush()
            profile = self._to_profile(record)

        logger.info(f"Created {db_type} connection profile {profile.id} for owner {owner_id}")
        return profile

    def get_profile(self, owner_id: str, profile_id: str) -> Optional[ConnectionProfile]:
        """Return the profile if it exists and belongs to owner_id."""
        with self._db.get_session() as session:
            record = session.get(ConnectionProfileRecord, profile_id)
            if record is None or record.owner_id != owner_id:
                return None
            return self._to_profile(record)

    def require_profile(self, owner_id: str, profile_id: str) -> ConnectionProfile:
        profile = self.get_profile(owner_id, profile_id)
        if profile is None:
            raise NotFoundError("Connection profile", profile_id)
        return profile

    def list_profiles(self, owner_id: str) -> List[ConnectionProfile]:
        """Profiles owned by owner_id, oldest first."""
        with self._db.get_session() as session:
            records = session.execute(
                select(ConnectionProfileRecord)
                .where(ConnectionProfileRecord.owner_id == owner_id)
                .order_by(ConnectionProfileRecord.created_at, ConnectionProfileRecord.id)
            ).scalars().all()
            return [self._to_profile(r) for r in records]

    def delete_profile(self, owner_id: str, profile_id: str) -> bool:
        """Delete an owned profile and close its pool.

        Returns:
            True if a profile was deleted
        """
        with self._db.get_session() as session:
            record = session.get(ConnectionProfileRecord, profile_id)
            if record is None or record.owner_id != owner_id:
                return False
            session.delete(record)

        if self._pools is not None:
            self._pools.close_pool(profile_id, owner_id)
        logger.info(f"Deleted connection profile {profile_id} for owner {owner_id}")
        return True

    @staticmethod
    def _to_profile(record: ConnectionProfileRecord) -> ConnectionProfile:
        return ConnectionProfile(
            id=record.id,
            owner_id=record.owner_id,
            display_name=record.display_name,
            encrypted_dsn=record.encrypted_dsn,
            db_type=record.db_type,
            created_at=record.created_at,
        )
