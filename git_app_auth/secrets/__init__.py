"""Secret storage for private keys and access tokens.

Backends:
    - KeyringBackend: OS keyring, every call bounded by a timeout
    - EncryptedFileBackend: Fernet-encrypted store in the secrets directory

``SecretStore`` combines them: keyring first, encrypted file when the keyring
is unavailable and the secret has a persistent source.
"""

from git_app_auth.secrets.backend import SecretBackend
from git_app_auth.secrets.encrypted_backend import EncryptedFileBackend
from git_app_auth.secrets.keyring_backend import KeyringBackend
from git_app_auth.secrets.store import (
    SecretStore,
    format_keyring_unavailable_error,
    keyring_install_instructions,
    read_secret_file,
    validate_secret_file,
)

__all__ = [
    "SecretBackend",
    "KeyringBackend",
    "EncryptedFileBackend",
    "SecretStore",
    "format_keyring_unavailable_error",
    "keyring_install_instructions",
    "read_secret_file",
    "validate_secret_file",
]
