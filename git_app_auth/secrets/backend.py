"""Abstract backend protocol for secret storage."""

from typing import Protocol


class SecretBackend(Protocol):
    """Protocol defining the interface for secret storage backends.

    The keyring and the encrypted file store both implement it, which lets
    ``SecretStore`` pick one at runtime by probing availability and lets
    tests substitute an in-memory double.
    """

    @property
    def name(self) -> str:
        """Backend identifier (e.g., 'keyring', 'filesystem')."""
        ...

    @property
    def available(self) -> bool:
        """Check if this backend is usable on the current system."""
        ...

    def get(self, service: str, key: str) -> str | None:
        """Retrieve a secret.

        Args:
            service: Entry identifier (e.g., 'app-12345')
            key: Secret kind within the entry (e.g., 'private_key')

        Returns:
            Secret value or None if not found

        Raises:
            StorageUnavailableError: If backend is not available or timed out
        """
        ...

    def set(self, service: str, key: str, value: str) -> None:
        """Store a secret.

        Raises:
            StorageUnavailableError: If backend is not available or timed out
        """
        ...

    def delete(self, service: str, key: str) -> bool:
        """Delete a secret.

        Returns:
            True if the secret was deleted, False if not found
        """
        ...
