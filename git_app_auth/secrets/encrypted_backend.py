"""Encrypted file backend using Fernet symmetric encryption.

Security Model:
- Secrets encrypted with Fernet (AES-128-CBC + HMAC)
- Key either derived from a master password (PBKDF2-HMAC-SHA256) or a
  random key generated once and kept beside the store
- Store, salt and key files are written with 0600 permissions inside a
  0700 directory
- Used when the OS keyring is unavailable and the secret has a persistent
  origin (a key or token file)
"""

import base64
import json
import os
import secrets
from pathlib import Path
from typing import cast

import structlog
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from git_app_auth.exceptions import EncryptionError
from git_app_auth.utils.files import write_private_file

log = structlog.get_logger(__name__)

STORE_FILENAME = "secrets.enc"
SALT_FILENAME = "secrets.salt"
KEY_FILENAME = "secrets.key"


class EncryptedFileBackend:
    """Encrypted file-based secret storage.

    All entries share one encrypted JSON document mapping
    ``service -> {key -> value}``.

    Example:
        >>> backend = EncryptedFileBackend(base_dir=Path("~/.config/gh/extensions/gh-app-auth"))
        >>> backend.set('app-12345', 'private_key', pem_text)
        >>> pem = backend.get('app-12345', 'private_key')
    """

    def __init__(self, base_dir: Path, master_password: str | None = None) -> None:
        """Initialize encrypted file backend.

        Args:
            base_dir: Directory holding the store and its key material
            master_password: Optional password; when omitted a random key
                file is generated on first write
        """
        self.base_dir = base_dir
        self.file_path = base_dir / STORE_FILENAME
        self._master_password = master_password
        self._fernet: Fernet | None = None

    @property
    def name(self) -> str:
        return "filesystem"

    @property
    def available(self) -> bool:
        """Available when the store directory exists or can be created."""
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
        except OSError as e:
            log.debug("filesystem_store_unavailable", error=str(e))
            return False
        return os.access(self.base_dir, os.W_OK)

    @staticmethod
    def _derive_key(password: str, salt: bytes) -> bytes:
        """Derive a Fernet key with PBKDF2-HMAC-SHA256, 480,000 iterations."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=480_000,
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode("utf-8")))

    def _load_or_create(self, filename: str, factory: bytes) -> bytes:
        path = self.base_dir / filename
        if path.exists():
            return path.read_bytes()
        write_private_file(path, factory)
        return factory

    @property
    def fernet(self) -> Fernet:
        """Cipher for the store, created on first use."""
        if self._fernet is None:
            try:
                if self._master_password:
                    salt = self._load_or_create(SALT_FILENAME, secrets.token_bytes(16))
                    key = self._derive_key(self._master_password, salt)
                else:
                    key = self._load_or_create(KEY_FILENAME, Fernet.generate_key()).strip()
                self._fernet = Fernet(key)
            except (OSError, ValueError) as e:
                raise EncryptionError(
                    f"Cannot initialize encrypted store in {self.base_dir}: {type(e).__name__}",
                    suggestion="Check that the directory is writable by the current user",
                ) from e
        return self._fernet

    def _load(self) -> dict[str, dict[str, str]]:
        """Load and decrypt the whole store.

        Raises:
            EncryptionError: If decryption fails
        """
        if not self.file_path.exists():
            return {}

        try:
            decrypted = self.fernet.decrypt(self.file_path.read_bytes())
            return cast(dict[str, dict[str, str]], json.loads(decrypted.decode("utf-8")))
        except InvalidToken as e:
            raise EncryptionError(
                "Invalid master password or corrupted secrets file",
                reference=str(self.file_path),
                suggestion="Verify GH_APP_AUTH_MASTER_PASSWORD or re-run setup",
            ) from e
        except json.JSONDecodeError as e:
            raise EncryptionError(
                "Secrets file is corrupted",
                reference=str(self.file_path),
                suggestion="Delete it and re-run setup",
            ) from e
        except OSError as e:
            raise EncryptionError(f"Failed to read secrets file: {e.strerror}", reference=str(self.file_path)) from e

    def _save(self, entries: dict[str, dict[str, str]]) -> None:
        try:
            encrypted = self.fernet.encrypt(json.dumps(entries).encode("utf-8"))
            write_private_file(self.file_path, encrypted)
        except OSError as e:
            raise EncryptionError(f"Failed to save secrets file: {e.strerror}", reference=str(self.file_path)) from e
        log.debug("filesystem_store_saved", path=str(self.file_path))

    def get(self, service: str, key: str) -> str | None:
        value = self._load().get(service, {}).get(key)
        if value is not None:
            log.debug("filesystem_secret_retrieved", service=service, kind=key)
        return value

    def set(self, service: str, key: str, value: str) -> None:
        if not value:
            raise ValueError("Secret value cannot be empty")

        entries = self._load()
        entries.setdefault(service, {})[key] = value
        self._save(entries)
        log.info("filesystem_secret_stored", service=service, kind=key)

    def delete(self, service: str, key: str) -> bool:
        entries = self._load()
        if key not in entries.get(service, {}):
            return False

        del entries[service][key]
        if not entries[service]:
            del entries[service]

        self._save(entries)
        log.info("filesystem_secret_deleted", service=service, kind=key)
        return True
