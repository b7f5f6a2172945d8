"""Enumerations for secret storage and credential protocol values."""

from enum import Enum


class StorageBackend(str, Enum):
    """Where a secret lives.

    - keyring: OS credential store (Keychain, Secret Service, Credential Manager)
    - filesystem: encrypted entry in the helper's secrets directory, or a
      user-owned key/token file referenced by path
    """

    KEYRING = "keyring"
    FILESYSTEM = "filesystem"

    def __str__(self) -> str:
        return self.value


class SecretKind(str, Enum):
    """Category of stored secret, used to namespace store entries."""

    PRIVATE_KEY = "private_key"
    TOKEN = "token"

    def __str__(self) -> str:
        return self.value


class Operation(str, Enum):
    """Credential protocol operations sent by git."""

    GET = "get"
    STORE = "store"
    ERASE = "erase"

    def __str__(self) -> str:
        return self.value
