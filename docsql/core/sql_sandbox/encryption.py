"""
Credential vault for connection strings.

DSNs are sealed with AES-256-GCM. Each call draws a fresh 64-byte salt and
16-byte IV; the per-record key is derived from the master key and the salt
with HKDF-SHA256. Stored format: base64(salt | iv | tag | ciphertext).
"""

import base64
import binascii
import logging
import os
from typing import Dict, Optional
from urllib.parse import urlparse

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from docsql.core.exceptions import ConfigurationError, DecryptionError, ValidationError
from docsql.core.sql_sandbox.types import DatabaseType

logger = logging.getLogger(__name__)


class CredentialVault:
    """Encrypt, decrypt and validate database connection strings.

    Decryption verifies the GCM tag and fails closed: a wrong key, a flipped
    bit or a truncated payload raises DecryptionError and never returns
    partial plaintext.
    """

    SALT_LENGTH = 64
    IV_LENGTH = 16
    TAG_LENGTH = 16
    KEY_LENGTH = 32
    KDF_INFO = b"docsql-dsn-v1"

    # scheme -> database type
    SUPPORTED_SCHEMES: Dict[str, DatabaseType] = {
        'postgresql': 'postgresql',
        'postgres': 'postgresql',
        'postgresql+psycopg2': 'postgresql',
        'postgresql+psycopg': 'postgresql',
        'mysql': 'mysql',
        'mysql+pymysql': 'mysql',
        'sqlite': 'sqlite',
    }

    def __init__(self, key: Optional[str] = None):
        """Initialize vault.

        Args:
            key: Base64-encoded 32-byte master key.
                 Falls back to the DSN_ENCRYPTION_KEY setting.

        Raises:
            ConfigurationError: If no key is configured or it is not 32 bytes
        """
        if key is None:
            from docsql.setting import get_settings
            key = get_settings().sandbox.encryption_key

        if not key:
            raise ConfigurationError(
                "DSN_ENCRYPTION_KEY is not set. Generate one with CredentialVault.generate_key()"
            )

        try:
            master_key = base64.b64decode(key, validate=True)
        except (binascii.Error, ValueError):
            raise ConfigurationError("DSN_ENCRYPTION_KEY must be base64-encoded")

        if len(master_key) != self.KEY_LENGTH:
            raise ConfigurationError(
                f"DSN_ENCRYPTION_KEY must decode to {self.KEY_LENGTH} bytes, got {len(master_key)}"
            )
        self._master_key = master_key

    @classmethod
    def generate_key(cls) -> str:
        """Generate a new base64-encoded 256-bit master key."""
        return base64.b64encode(os.urandom(cls.KEY_LENGTH)).decode("ascii")

    def _derive_key(self, salt: bytes) -> bytes:
        return HKDF(
            algorithm=hashes.SHA256(),
            length=self.KEY_LENGTH,
            salt=salt,
            info=self.KDF_INFO,
        ).derive(self._master_key)

    def encrypt(self, dsn: str) -> str:
        """Encrypt a connection string.

        Args:
            dsn: Plaintext connection string

        Returns:
            base64(salt | iv | tag | ciphertext)
        """
        salt = os.urandom(self.SALT_LENGTH)
        iv = os.urandom(self.IV_LENGTH)
        sealed = AESGCM(self._derive_key(salt)).encrypt(iv, dsn.encode("utf-8"), None)
        # AESGCM appends the tag to the ciphertext
        ciphertext, tag = sealed[:-self.TAG_LENGTH], sealed[-self.TAG_LENGTH:]
        return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")

    def decrypt(self, encrypted: str) -> str:
        """Decrypt a stored connection string.

        Args:
            encrypted: Value produced by encrypt()

        Returns:
            Plaintext connection string

        Raises:
            DecryptionError: On tamper, wrong key or malformed payload
        """
        try:
            data = base64.b64decode(encrypted, validate=True)
        except (binascii.Error, ValueError, TypeError):
            raise DecryptionError()

        header = self.SALT_LENGTH + self.IV_LENGTH + self.TAG_LENGTH
        if len(data) < header:
            raise DecryptionError()

        salt = data[:self.SALT_LENGTH]
        iv = data[self.SALT_LENGTH:self.SALT_LENGTH + self.IV_LENGTH]
        tag = data[self.SALT_LENGTH + self.IV_LENGTH:header]
        ciphertext = data[header:]

        try:
            plaintext = AESGCM(self._derive_key(salt)).decrypt(iv, ciphertext + tag, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, UnicodeDecodeError):
            raise DecryptionError()

    def validate(self, dsn: str) -> DatabaseType:
        """Check that a connection string is acceptable before storing it.

        Network databases need a host, and a numeric port when one is given.
        SQLite needs a file path. Error messages never echo the DSN.

        Args:
            dsn: Plaintext connection string

        Returns:
            Database type derived from the scheme

        Raises:
            ValidationError: If the scheme is unsupported or the DSN is incomplete
        """
        if not dsn or not dsn.strip():
            raise ValidationError("Connection string is required")

        parsed = urlparse(dsn.strip())
        scheme = parsed.scheme.lower()
        db_type = self.SUPPORTED_SCHEMES.get(scheme)
        if db_type is None:
            raise ValidationError(
                f"Unsupported database scheme: {scheme or '(none)'}",
                details={"supported": sorted(self.SUPPORTED_SCHEMES)}
            )

        if db_type == "sqlite":
            if not parsed.path or parsed.path == "/":
                raise ValidationError("SQLite connection string must include a database path")
            if parsed.path == "/:memory:":
                raise ValidationError("In-memory SQLite databases cannot be shared across connections")
            return db_type

        if not parsed.hostname:
            raise ValidationError("Connection string must include a host")
        try:
            parsed.port
        except ValueError:
            raise ValidationError("Connection string port must be numeric")
        return db_type


def to_sqlalchemy_url(dsn: str) -> str:
    """Map a user DSN onto the SQLAlchemy driver URL used for pooling."""
    scheme, sep, rest = dsn.strip().partition("://")
    if not sep:
        return dsn
    driver_map = {
        'postgres': 'postgresql+psycopg2',
        'postgresql': 'postgresql+psycopg2',
        'mysql': 'mysql+pymysql',
    }
    return f"{driver_map.get(scheme.lower(), scheme)}://{rest}"
