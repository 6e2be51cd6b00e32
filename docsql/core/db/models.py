"""
SQLAlchemy ORM models for state owned by the retrieval core.

Only connection profiles are persisted here. Document chunks belong to
ingestion and are read through the vector store adapters.
"""

from sqlalchemy import Column, String, Text, TIMESTAMP, Index
from sqlalchemy.orm import declarative_base
import uuid
from datetime import datetime

Base = declarative_base()


class ConnectionProfileRecord(Base):
    """User-owned external database connection with an encrypted DSN."""
    __tablename__ = "connection_profiles"
    __table_args__ = (
        Index("idx_connection_profiles_owner", "owner_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(100), nullable=False)
    display_name = Column(String(200), nullable=False)
    db_type = Column(String(20), nullable=False)  # postgresql, mysql, sqlite
    encrypted_dsn = Column(Text, nullable=False)  # base64(salt|iv|tag|ciphertext)
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<ConnectionProfileRecord(id={self.id}, name='{self.display_name}', type='{self.db_type}')>"
