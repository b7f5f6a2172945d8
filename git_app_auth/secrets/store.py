"""Uniform secret storage with OS keyring first and encrypted-file fallback.

``SecretStore`` is the only component that touches secret material at
rest. It owns three locations:

- the OS keyring (preferred, every call bounded by a timeout)
- an encrypted store in the helper's secrets directory
- user-owned key/token files referenced by path from the configuration,
  which must not be readable by group or other users
"""

import stat
import sys
from pathlib import Path

import structlog

from git_app_auth.config.settings import SecretRef
from git_app_auth.enums import SecretKind, StorageBackend
from git_app_auth.exceptions import (
    CredentialError,
    KeyPermissionError,
    SecretNotFoundError,
    StorageUnavailableError,
)
from git_app_auth.secrets.backend import SecretBackend
from git_app_auth.secrets.encrypted_backend import EncryptedFileBackend
from git_app_auth.secrets.keyring_backend import DEFAULT_TIMEOUT, KeyringBackend

log = structlog.get_logger(__name__)

_LINUX_INSTRUCTIONS = """
Keyring Installation Options for Linux:

1. GNOME Keyring (most common):
   - Ubuntu/Debian: apt install gnome-keyring libsecret-1-0
   - Fedora/RHEL: dnf install gnome-keyring libsecret
   - Without root: Use 'pass' (password-store) in your home directory

2. KDE Wallet:
   - Ubuntu/Debian: apt install kwalletmanager
   - Fedora/RHEL: dnf install kwalletmanager

3. Pass (password-store) - No root required:
   - Install to ~/.local/bin from https://www.passwordstore.org/
   - Works entirely in your home directory"""

_DARWIN_INSTRUCTIONS = """
Keyring on macOS:

macOS Keychain is built into the system and should be available by default.
If you're experiencing issues:

1. Check Keychain Access app in Applications/Utilities
2. Ensure your login keychain is unlocked
3. Try: security unlock-keychain ~/Library/Keychains/login.keychain-db"""

_WINDOWS_INSTRUCTIONS = """
Keyring on Windows:

Windows Credential Manager is built into the system and should be available by default.
If you're experiencing issues:

1. Open Control Panel -> Credential Manager
2. Check that the Credential Manager service is running"""

_FREEBSD_INSTRUCTIONS = """
Keyring Installation Options for FreeBSD:

1. GNOME Keyring:
   - pkg install gnome-keyring
   - Without root: Use 'pass' (password-store) in your home directory

2. Pass (password-store) - No root required:
   - Works entirely in your home directory"""

_DEFAULT_INSTRUCTIONS = """
Keyring support varies by operating system. Common options:

1. Use --key-file to specify a key file path instead
2. Install a keyring/credential manager for your OS
3. Contact your system administrator for assistance"""


def keyring_install_instructions(platform: str = sys.platform) -> str:
    """OS-specific guidance for getting a working keyring.

    Args:
        platform: ``sys.platform`` style identifier (linux, darwin, win32, freebsd...)
    """
    if platform.startswith("linux"):
        return _LINUX_INSTRUCTIONS
    if platform == "darwin":
        return _DARWIN_INSTRUCTIONS
    if platform in ("win32", "windows", "cygwin"):
        return _WINDOWS_INSTRUCTIONS
    if platform.startswith("freebsd"):
        return _FREEBSD_INSTRUCTIONS
    return _DEFAULT_INSTRUCTIONS


def format_keyring_unavailable_error(platform: str = sys.platform, has_key_file: bool = False) -> str:
    """Remediation text for a keyring failure with no persistent fallback."""
    message = (
        "Keyring is unavailable on this system and the secret was supplied through an\n"
        "environment variable (GH_APP_PRIVATE_KEY / GH_APP_TOKEN).\n\n"
        "Filesystem storage needs a persistent file to fall back to.\n\n"
        "Options to resolve this:\n"
    )
    if has_key_file:
        message += "1. Use --key-file to specify your key file path (recommended)\n"
    else:
        message += (
            "1. Use --key-file to specify your key file path (recommended):\n"
            '   git-app-auth setup app --app-id <id> --key-file /path/to/key.pem --patterns "github.com/org"\n'
        )
    message += "2. Install and configure a keyring for your system (see below)\n"
    return message + "\n" + keyring_install_instructions(platform)


def validate_secret_file(path: Path) -> None:
    """Reject key/token files readable by group or other users.

    Raises:
        SecretNotFoundError: If the file does not exist
        KeyPermissionError: If ``mode & 0o044`` is non-zero
    """
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError as e:
        raise SecretNotFoundError("Secret file not found", reference=str(path)) from e
    except OSError as e:
        raise CredentialError(f"Failed to access secret file: {e.strerror}", reference=str(path)) from e

    if mode & 0o044:
        raise KeyPermissionError(
            f"Secret file has overly permissive permissions {mode:o} (should be 600 or 400)",
            reference=str(path),
            suggestion=f"chmod 600 {path}",
        )


def read_secret_file(path: Path) -> str:
    """Read a user-owned key/token file after checking its permissions."""
    validate_secret_file(path)
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise CredentialError(f"Failed to read secret file: {e.strerror}", reference=str(path)) from e


class SecretStore:
    """Get/put/delete over the OS keyring with an encrypted-file fallback.

    Example:
        >>> store = SecretStore(base_dir=Path("~/.config/gh/extensions/gh-app-auth").expanduser())
        >>> backend = store.put("app-12345", SecretKind.PRIVATE_KEY, pem, source_path=key_file)
        >>> pem, backend = store.get("app-12345", SecretKind.PRIVATE_KEY)
    """

    def __init__(
        self,
        base_dir: Path,
        keyring_backend: SecretBackend | None = None,
        file_backend: SecretBackend | None = None,
        keyring_timeout: float = DEFAULT_TIMEOUT,
        master_password: str | None = None,
        platform: str = sys.platform,
    ) -> None:
        """Initialize the store.

        Args:
            base_dir: Directory of the encrypted fallback store
            keyring_backend: Keyring implementation (defaults to the OS keyring)
            file_backend: Filesystem implementation (defaults to the encrypted store)
            keyring_timeout: Deadline in seconds for each keyring call
            master_password: Optional password for the encrypted store
            platform: Platform used to pick remediation instructions
        """
        self.keyring: SecretBackend = keyring_backend or KeyringBackend(timeout=keyring_timeout)
        self.files: SecretBackend = file_backend or EncryptedFileBackend(base_dir, master_password)
        self.platform = platform

    def put(
        self,
        secret_id: str,
        kind: SecretKind,
        value: str,
        source_path: Path | None = None,
        backend: StorageBackend = StorageBackend.KEYRING,
    ) -> StorageBackend:
        """Store a secret, preferring the keyring.

        Args:
            secret_id: Entry identifier (e.g., "app-12345")
            kind: Category of secret
            value: Secret value
            source_path: Persistent file the secret came from, if any. Without
                it, a keyring failure cannot fall back to the filesystem.
            backend: Requested backend; FILESYSTEM skips the keyring

        Returns:
            The backend that now holds the secret

        Raises:
            StorageUnavailableError: Keyring failed and the secret has no persistent source
        """
        if backend is StorageBackend.KEYRING:
            try:
                self.keyring.set(secret_id, str(kind), value)
                return StorageBackend.KEYRING
            except StorageUnavailableError as e:
                if source_path is None:
                    raise StorageUnavailableError(
                        format_keyring_unavailable_error(self.platform, has_key_file=False),
                        reference=f"keyring:{secret_id}/{kind}",
                    ) from e
                log.warning("keyring_unavailable_falling_back", entry=secret_id, kind=str(kind), error=e.message)
        elif source_path is None:
            raise StorageUnavailableError(
                "Filesystem storage requires a persistent key or token file",
                reference=f"filesystem:{secret_id}/{kind}",
                suggestion="Pass --key-file / --token-file instead of an environment variable",
            )

        self.files.set(secret_id, str(kind), value)
        return StorageBackend.FILESYSTEM

    def get(
        self,
        secret_id: str,
        kind: SecretKind,
        source_path: Path | None = None,
        backend: StorageBackend = StorageBackend.KEYRING,
    ) -> tuple[str, StorageBackend]:
        """Retrieve a secret.

        Lookup order is keyring (unless ``backend`` is FILESYSTEM), then the
        user-owned file at ``source_path``, then the encrypted store.

        Returns:
            Tuple of (value, backend that supplied it)

        Raises:
            SecretNotFoundError: If no location holds the secret
            KeyPermissionError: If ``source_path`` is group/other readable
        """
        if backend is StorageBackend.KEYRING:
            try:
                value = self.keyring.get(secret_id, str(kind))
            except StorageUnavailableError as e:
                log.info("keyring_lookup_skipped", entry=secret_id, kind=str(kind), error=e.message)
                value = None
            if value:
                return value, StorageBackend.KEYRING

        if source_path is not None and source_path.exists():
            return read_secret_file(source_path), StorageBackend.FILESYSTEM

        value = self.files.get(secret_id, str(kind))
        if value:
            return value, StorageBackend.FILESYSTEM

        if source_path is not None:
            raise SecretNotFoundError(f"No {kind} found for {secret_id}", reference=str(source_path))
        raise SecretNotFoundError(
            f"No {kind} found for {secret_id}",
            reference=f"{backend}:{secret_id}/{kind}",
            suggestion="Re-run setup for this source",
        )

    def get_ref(self, ref: SecretRef) -> tuple[str, StorageBackend]:
        """Resolve a configuration ``SecretRef`` at the moment of use."""
        return self.get(ref.id, ref.kind, source_path=ref.path, backend=ref.backend)

    def delete(self, secret_id: str, kind: SecretKind) -> bool:
        """Remove a secret from every managed location.

        User-owned files referenced by path are left untouched.

        Returns:
            True if any location held the secret
        """
        deleted = False
        try:
            deleted = self.keyring.delete(secret_id, str(kind))
        except StorageUnavailableError as e:
            log.info("keyring_delete_skipped", entry=secret_id, kind=str(kind), error=e.message)

        if self.files.delete(secret_id, str(kind)):
            deleted = True
        return deleted
