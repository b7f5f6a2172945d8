"""OS-level keyring backend using system credential stores.

Platform Support:
- Linux: Secret Service API (GNOME Keyring, KWallet)
- macOS: Keychain
- Windows: Windows Credential Locker

Every keyring call runs under a hard deadline. A locked or misconfigured
Secret Service can block indefinitely, and a credential helper that hangs
stalls the git command that spawned it.
"""

import threading
from collections.abc import Callable
from typing import Any, TypeVar, cast

import keyring
import structlog
from keyring.backends import fail
from keyring.errors import KeyringError, PasswordDeleteError

from git_app_auth.exceptions import StorageUnavailableError

log = structlog.get_logger(__name__)

T = TypeVar("T")

SERVICE_NAMESPACE = "gh-app-auth"
DEFAULT_TIMEOUT = 3.0


class KeyringBackend:
    """OS-level secret storage using the system keyring.

    Entries are namespaced under ``gh-app-auth/<service>`` so they do not
    collide with other tools sharing the same keyring.

    Example:
        >>> backend = KeyringBackend(timeout=3.0)
        >>> backend.set('app-12345', 'private_key', pem_text)
        >>> pem = backend.get('app-12345', 'private_key')
        >>> backend.delete('app-12345', 'private_key')
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "keyring"

    @property
    def available(self) -> bool:
        """Check if a functional keyring backend is configured.

        Returns False on headless systems where keyring falls back to its
        ``fail`` backend, or when the backend cannot be initialized in time.
        """
        try:
            backend = self._call(keyring.get_keyring)
        except Exception as e:
            log.debug("keyring_unavailable", error=str(e))
            return False
        return not isinstance(backend, fail.Keyring)

    def _call(self, func: Callable[..., T], *args: Any) -> T:
        """Run a keyring call in a daemon thread, abandoning it after ``timeout``.

        The thread is a daemon so an abandoned call cannot keep the process
        alive at exit.
        """
        outcome: dict[str, Any] = {}

        def target() -> None:
            try:
                outcome["value"] = func(*args)
            except Exception as e:  # re-raised in the calling thread
                outcome["error"] = e

        worker = threading.Thread(target=target, name="keyring-call", daemon=True)
        worker.start()
        worker.join(self.timeout)

        if worker.is_alive():
            log.warning("keyring_timeout", timeout=self.timeout)
            raise StorageUnavailableError(f"Keyring did not respond within {self.timeout:g}s")
        if "error" in outcome:
            raise outcome["error"]
        return cast(T, outcome.get("value"))

    def get(self, service: str, key: str) -> str | None:
        """Retrieve a secret from the OS keyring.

        Raises:
            StorageUnavailableError: If the keyring is missing or timed out
        """
        full_service = f"{SERVICE_NAMESPACE}/{service}"
        try:
            value = cast(str | None, self._call(keyring.get_password, full_service, key))
        except (KeyringError, OSError, RuntimeError) as e:
            raise StorageUnavailableError(
                f"Keyring operation failed: {type(e).__name__}", reference=f"keyring:{service}/{key}"
            ) from e

        if value is not None:
            log.debug("keyring_secret_retrieved", service=service, kind=key)
        return value

    def set(self, service: str, key: str, value: str) -> None:
        """Store a secret in the OS keyring.

        Raises:
            StorageUnavailableError: If the keyring is missing, failing or timed out
        """
        if not value:
            raise ValueError("Secret value cannot be empty")

        full_service = f"{SERVICE_NAMESPACE}/{service}"
        try:
            self._call(keyring.set_password, full_service, key, value)
        except (KeyringError, OSError, RuntimeError) as e:
            raise StorageUnavailableError(
                f"Failed to store secret in keyring: {type(e).__name__}", reference=f"keyring:{service}/{key}"
            ) from e
        log.info("keyring_secret_stored", service=service, kind=key)

    def delete(self, service: str, key: str) -> bool:
        """Delete a secret from the OS keyring.

        Returns:
            True if deleted, False if not found
        """
        full_service = f"{SERVICE_NAMESPACE}/{service}"
        try:
            self._call(keyring.delete_password, full_service, key)
        except PasswordDeleteError:
            return False
        except (KeyringError, OSError, RuntimeError) as e:
            raise StorageUnavailableError(
                f"Failed to delete secret from keyring: {type(e).__name__}", reference=f"keyring:{service}/{key}"
            ) from e
        log.info("keyring_secret_deleted", service=service, kind=key)
        return True
