"""Custom exception hierarchy for git-app-auth.

Every failure the helper can report derives from a single base class so
the CLI layer can turn them into exit codes with one except clause.

Exception Hierarchy:
    GitAppAuthError (base)
    ├── ConfigurationError
    ├── NoMatchError
    ├── CredentialError
    │   ├── SecretNotFoundError
    │   ├── StorageUnavailableError
    │   ├── EncryptionError
    │   └── KeyPermissionError
    ├── AssertionSigningError
    │   ├── InvalidAppIDError
    │   └── InvalidKeyError
    └── ExchangeError

None of these messages may contain secret material. Callers that need to
mention a secret in a message go through
``git_app_auth.utils.redaction.redact_secret`` first.

Example Usage:
    >>> from git_app_auth.exceptions import ConfigurationError
    >>> try:
    ...     load_config(path)
    ... except FileNotFoundError as e:
    ...     raise ConfigurationError(f"Config file not found: {path}") from e
"""


class GitAppAuthError(Exception):
    """Base exception for all git-app-auth errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(GitAppAuthError):
    """Configuration-related errors.

    Raised when the source list is missing, unreadable or fails validation.

    Examples:
        - Configuration file not found
        - Invalid YAML/JSON syntax
        - Source without patterns
        - Non-positive app ID
    """

    pass


class NoMatchError(GitAppAuthError):
    """No configured source matches the lookup key.

    This is a normal outcome for the credential protocol: the handler turns
    it into a silent, successful exit so git can fall through to the next
    configured helper.
    """

    def __init__(self, lookup_key: str) -> None:
        self.lookup_key = lookup_key
        super().__init__(f"No credential source matches {lookup_key}")


class CredentialError(GitAppAuthError):
    """Secret storage errors.

    Base class for failures to locate, store or decrypt a secret.

    Attributes:
        message: Human-readable error description
        reference: Locator of the secret that failed (e.g., "keyring:app-123/private_key")
        suggestion: Optional remediation hint
    """

    def __init__(
        self,
        message: str,
        reference: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            reference: Locator of the secret that failed
            suggestion: Optional suggestion for resolution
        """
        self.reference = reference
        self.suggestion = suggestion

        full_message = message
        if reference:
            full_message = f"{message} (reference: {reference})"
        if suggestion:
            full_message = f"{full_message}\nSuggestion: {suggestion}"

        super().__init__(full_message)
        # Preserve original message (super sets self.message to full_message)
        self.message = message


class SecretNotFoundError(CredentialError):
    """Source matched but its secret cannot be located."""

    pass


class StorageUnavailableError(CredentialError):
    """Keyring is inoperative and no filesystem fallback is possible."""

    pass


class EncryptionError(CredentialError):
    """Encrypted filesystem store could not be read or written."""

    pass


class KeyPermissionError(CredentialError):
    """Key or token file is readable by group or other users."""

    pass


class AssertionSigningError(GitAppAuthError):
    """A GitHub App assertion (JWT) could not be minted.

    Never retried: malformed input does not become valid on a second try.
    """

    pass


class InvalidAppIDError(AssertionSigningError):
    """App ID is zero or negative."""

    pass


class InvalidKeyError(AssertionSigningError):
    """Private key is not a parsable RSA key."""

    pass


class ExchangeError(GitAppAuthError):
    """Token exchange with the GitHub API failed.

    Attributes:
        status_code: HTTP status returned by the API, None for transport errors
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        if status_code is not None:
            message = f"{message} (status {status_code})"
        super().__init__(message)
