"""
Configuration system using Pydantic for type-safe settings management.

Two layers live here:

- ``HelperConfig``: the ordered list of credential sources (GitHub Apps and
  static tokens), loaded from a YAML or JSON file and edited by ``setup`` /
  ``remove``.
- ``RuntimeSettings``: process knobs read from ``GH_APP_AUTH_*`` environment
  variables (config path, timeouts, cache margin, diagnostic log), plus
  the automatic-mode App from ``GH_APP_ID`` and ``GH_APP_PRIVATE_KEY_PATH``.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from git_app_auth.enums import SecretKind, StorageBackend
from git_app_auth.exceptions import ConfigurationError
from git_app_auth.utils.files import write_private_file

CURRENT_CONFIG_VERSION = "1"

DEFAULT_CONFIG_DIR = Path("~/.config/gh/extensions/gh-app-auth")

# Automatic mode: one App from GH_APP_ID / GH_APP_PRIVATE_KEY_PATH answers for every github.com repository
AUTO_MODE_HOST = "github.com"
AUTO_MODE_SOURCE_NAME = "Automatic mode"


def expand_path(path: str | Path) -> Path:
    """Expand ``~`` and make a path absolute."""
    return Path(os.path.expanduser(str(path))).absolute()


class SecretRef(BaseModel):
    """Locator for a secret. Never carries the secret value itself."""

    backend: StorageBackend
    id: str = Field(..., min_length=1)
    kind: SecretKind
    path: Path | None = Field(default=None, description="User-owned key/token file for filesystem refs")

    def __str__(self) -> str:
        if self.path is not None:
            return f"file:{self.path}"
        return f"{self.backend}:{self.id}/{self.kind}"


class _SourceBase(BaseModel):
    name: str
    patterns: list[str] = Field(..., description="URL prefixes this source answers for")
    priority: int = Field(default=0, description="Tie-breaker between equally specific matches")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name is required")
        return v

    @field_validator("patterns")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one pattern is required")
        for i, pattern in enumerate(v):
            if not pattern.strip():
                raise ValueError(f"patterns[{i}] cannot be empty")
        return v


class AppSource(_SourceBase):
    """GitHub App installation used as a credential source.

    ``installation_id`` of 0 means "discover from the repository at use time".
    """

    kind: Literal["app"] = "app"
    app_id: int = Field(..., gt=0, description="GitHub App ID")
    installation_id: int = Field(default=0, ge=0, description="Installation ID, 0 to auto-detect")
    private_key_source: StorageBackend | None = None
    private_key_path: Path | None = None

    @model_validator(mode="after")
    def validate_private_key_config(self) -> AppSource:
        """Resolve the key location; legacy configs only carry a path."""
        if self.private_key_source is None:
            if self.private_key_path is None:
                raise ValueError("private_key_path or private_key_source is required")
            self.private_key_source = StorageBackend.FILESYSTEM

        if self.private_key_source is StorageBackend.FILESYSTEM and self.private_key_path is None:
            raise ValueError("private_key_path is required when using filesystem source")
        if self.private_key_path is not None:
            self.private_key_path = expand_path(self.private_key_path)
        return self

    @property
    def secret_id(self) -> str:
        return f"app-{self.app_id}"

    @property
    def key_ref(self) -> SecretRef:
        return SecretRef(
            backend=self.private_key_source or StorageBackend.FILESYSTEM,
            id=self.secret_id,
            kind=SecretKind.PRIVATE_KEY,
            path=self.private_key_path,
        )


class TokenSource(_SourceBase):
    """Static access token (PAT) used as a credential source."""

    kind: Literal["pat"] = "pat"
    username: str | None = Field(default=None, description="HTTP username, defaults to x-access-token")
    token_source: StorageBackend = StorageBackend.KEYRING
    token_path: Path | None = None

    @model_validator(mode="after")
    def validate_token_path(self) -> TokenSource:
        if self.token_path is not None:
            self.token_path = expand_path(self.token_path)
        return self

    @property
    def secret_id(self) -> str:
        return f"pat-{self.name}"

    @property
    def token_ref(self) -> SecretRef:
        return SecretRef(
            backend=self.token_source,
            id=self.secret_id,
            kind=SecretKind.TOKEN,
            path=self.token_path,
        )


CredentialSource = AppSource | TokenSource


def _merge_patterns(existing: list[str], new: list[str]) -> list[str]:
    seen: set[str] = set()
    merged: list[str] = []
    for pattern in [*existing, *new]:
        if pattern not in seen:
            seen.add(pattern)
            merged.append(pattern)
    return merged


class HelperConfig(BaseModel):
    """Ordered credential source list.

    Declaration order matters: it is the final tie-breaker when two
    sources match a request equally well.
    """

    version: str = Field(default=CURRENT_CONFIG_VERSION)
    github_apps: list[AppSource] = Field(default_factory=list)
    pats: list[TokenSource] = Field(default_factory=list)

    def validate_not_empty(self) -> None:
        """Raise if the config holds no source at all."""
        if not self.github_apps and not self.pats:
            raise ConfigurationError("at least one github_app or pat is required")

    def sources(self) -> list[CredentialSource]:
        """All sources in declaration order, apps first."""
        return [*self.github_apps, *self.pats]

    def add_or_update_app(self, app: AppSource) -> None:
        """Add an app, merging patterns into an existing entry for the same installation."""
        for i, existing in enumerate(self.github_apps):
            if existing.app_id == app.app_id and existing.installation_id == app.installation_id:
                app.patterns = _merge_patterns(existing.patterns, app.patterns)
                self.github_apps[i] = app
                return
        self.github_apps.append(app)

    def add_or_update_pat(self, pat: TokenSource) -> None:
        for i, existing in enumerate(self.pats):
            if existing.name == pat.name:
                self.pats[i] = pat
                return
        self.pats.append(pat)

    def remove_app(self, app_id: int) -> AppSource | None:
        for i, app in enumerate(self.github_apps):
            if app.app_id == app_id:
                return self.github_apps.pop(i)
        return None

    def remove_pat(self, name: str) -> TokenSource | None:
        for i, pat in enumerate(self.pats):
            if pat.name == name:
                return self.pats.pop(i)
        return None

    def get_app(self, app_id: int) -> AppSource | None:
        return next((app for app in self.github_apps if app.app_id == app_id), None)

    @classmethod
    def from_file(cls, config_path: str | Path) -> HelperConfig:
        """Load and validate a source list from YAML or JSON.

        Args:
            config_path: Path to the configuration file

        Returns:
            HelperConfig instance with at least one source

        Raises:
            ConfigurationError: If the file is missing, unparsable or invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        config = cls._parse(config_file)
        config.validate_not_empty()
        return config

    @classmethod
    def load_or_create(cls, config_path: str | Path) -> HelperConfig:
        """Load a config for editing; a missing file yields an empty config."""
        config_file = Path(config_path)
        if not config_file.exists():
            return cls()
        return cls._parse(config_file)

    @classmethod
    def _parse(cls, config_file: Path) -> HelperConfig:
        try:
            content = config_file.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_file}") from e

        suffix = config_file.suffix.lower()
        try:
            if suffix == ".json":
                data = json.loads(content)
            else:
                # YAML is a superset of JSON, so unknown extensions go through it too
                data = yaml.safe_load(content)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Invalid syntax in {config_file}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration must be a mapping, not a list or scalar")

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {config_file}: {e}") from e

    def save(self, config_path: str | Path) -> None:
        """Atomically write the config as YAML with owner-only permissions."""
        config_file = Path(config_path)
        data = self.model_dump(
            mode="json",
            exclude_none=True,
            exclude={"github_apps": {"__all__": {"kind"}}, "pats": {"__all__": {"kind"}}},
        )
        write_private_file(config_file, yaml.safe_dump(data, sort_keys=False).encode("utf-8"))


class RuntimeSettings(BaseSettings):
    """Per-process settings read from ``GH_APP_AUTH_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="GH_APP_AUTH_",
        case_sensitive=False,
    )

    config: Path = Field(default=DEFAULT_CONFIG_DIR / "config.yml", description="Source list file")
    secrets_dir: Path | None = Field(default=None, description="Encrypted fallback store directory")
    debug_log: Path | None = Field(default=None, description="Append diagnostic events to this file")
    master_password: SecretStr | None = Field(default=None, description="Password for the encrypted fallback store")
    log_level: str = Field(default="WARNING")
    keyring_timeout: float = Field(default=3.0, gt=0, le=30.0, description="Seconds before keyring is abandoned")
    http_timeout: float = Field(default=30.0, gt=0, le=120.0)
    token_safety_margin: int = Field(
        default=300, ge=60, le=900, description="Seconds before expiry at which a cached token is refreshed"
    )
    jwt_lifetime: int = Field(default=600, ge=60, le=600, description="Assertion lifetime in seconds")
    jwt_clock_skew: int = Field(default=60, ge=0, le=120, description="Seconds iat is backdated")
    auto_app_id: int | None = Field(default=None, gt=0, validation_alias="GH_APP_ID")
    auto_private_key_path: Path | None = Field(default=None, validation_alias="GH_APP_PRIVATE_KEY_PATH")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {v!r}")
        return level

    @property
    def config_path(self) -> Path:
        return expand_path(self.config)

    @property
    def secrets_path(self) -> Path:
        if self.secrets_dir is not None:
            return expand_path(self.secrets_dir)
        return self.config_path.parent

    def auto_source(self) -> AppSource | None:
        """The App named by ``GH_APP_ID`` and ``GH_APP_PRIVATE_KEY_PATH``, if both are set.

        It answers for every ``github.com`` repository and discovers the
        installation per repository, so no source list is needed.
        """
        if self.auto_app_id is None or self.auto_private_key_path is None:
            return None
        return AppSource(
            name=AUTO_MODE_SOURCE_NAME,
            app_id=self.auto_app_id,
            installation_id=0,
            patterns=[AUTO_MODE_HOST],
            private_key_source=StorageBackend.FILESYSTEM,
            private_key_path=self.auto_private_key_path,
        )
