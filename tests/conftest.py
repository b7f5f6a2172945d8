"""Pytest configuration and shared fixtures."""

from datetime import UTC, datetime
from pathlib import Path

import pytest
import structlog
import structlog.testing
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from git_app_auth.config.settings import AppSource, HelperConfig, TokenSource
from git_app_auth.enums import StorageBackend
from git_app_auth.exceptions import StorageUnavailableError
from git_app_auth.secrets.store import SecretStore
from git_app_auth.utils.redaction import redact_event_fields


class InMemoryBackend:
    """Secret backend holding entries in a dict."""

    def __init__(self, name: str = "keyring") -> None:
        self._name = name
        self.entries: dict[tuple[str, str], str] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def available(self) -> bool:
        return True

    def get(self, service: str, key: str) -> str | None:
        return self.entries.get((service, key))

    def set(self, service: str, key: str, value: str) -> None:
        if not value:
            raise ValueError("Secret value cannot be empty")
        self.entries[(service, key)] = value

    def delete(self, service: str, key: str) -> bool:
        return self.entries.pop((service, key), None) is not None


class UnavailableKeyring(InMemoryBackend):
    """Keyring whose every operation fails like a headless Secret Service."""

    @property
    def available(self) -> bool:
        return False

    def get(self, service: str, key: str) -> str | None:
        raise StorageUnavailableError("Keyring did not respond within 3s")

    def set(self, service: str, key: str, value: str) -> None:
        raise StorageUnavailableError("Keyring did not respond within 3s")

    def delete(self, service: str, key: str) -> bool:
        raise StorageUnavailableError("Keyring did not respond within 3s")


@pytest.fixture(autouse=True)
def quiet_structlog():
    """Route log events through the redaction processor and discard them.

    Loggers are not cached, so ``structlog.testing.capture_logs`` works in
    any test.
    """
    structlog.configure(
        processors=[redact_event_fields, structlog.processors.JSONRenderer()],
        logger_factory=structlog.ReturnLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_key) -> str:
    """PKCS#1 PEM, the format GitHub hands out."""
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture(scope="session")
def pkcs8_private_key_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture(scope="session")
def ec_private_key_pem() -> str:
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def key_file(tmp_path: Path, private_key_pem: str) -> Path:
    """Private key file with owner-only permissions."""
    path = tmp_path / "app.pem"
    path.write_text(private_key_pem)
    path.chmod(0o600)
    return path


@pytest.fixture
def memory_keyring() -> InMemoryBackend:
    return InMemoryBackend("keyring")


@pytest.fixture
def memory_files() -> InMemoryBackend:
    return InMemoryBackend("filesystem")


@pytest.fixture
def memory_store(tmp_path: Path, memory_keyring, memory_files) -> SecretStore:
    """SecretStore backed by in-memory keyring and file backends."""
    return SecretStore(tmp_path, keyring_backend=memory_keyring, file_backend=memory_files, platform="linux")


@pytest.fixture
def headless_store(tmp_path: Path, memory_files) -> SecretStore:
    """SecretStore whose keyring is unavailable."""
    return SecretStore(tmp_path, keyring_backend=UnavailableKeyring(), file_backend=memory_files, platform="linux")


@pytest.fixture
def org_app() -> AppSource:
    return AppSource(
        name="Org App",
        app_id=12345,
        installation_id=789012,
        patterns=["github.com/myorg"],
        priority=5,
        private_key_source=StorageBackend.KEYRING,
    )


@pytest.fixture
def personal_pat() -> TokenSource:
    return TokenSource(name="personal", patterns=["github.com/me"], username="me")


@pytest.fixture
def helper_config(org_app, personal_pat) -> HelperConfig:
    return HelperConfig(github_apps=[org_app], pats=[personal_pat])


@pytest.fixture
def config_file(tmp_path: Path, helper_config: HelperConfig) -> Path:
    path = tmp_path / "config" / "config.yml"
    helper_config.save(path)
    return path


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def redacted_logs() -> structlog.testing.LogCapture:
    """Captured log events as they look after redaction."""
    capture = structlog.testing.LogCapture()
    structlog.configure(
        processors=[redact_event_fields, capture],
        logger_factory=structlog.ReturnLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    return capture
