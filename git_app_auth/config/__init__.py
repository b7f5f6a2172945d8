"""Configuration for git-app-auth.

Key Components:
    - HelperConfig: ordered credential source list with YAML/JSON loading
    - AppSource / TokenSource: the two credential source variants
    - SecretRef: locator of a source's secret
    - RuntimeSettings: GH_APP_AUTH_* environment settings

Example:
    >>> from git_app_auth.config import HelperConfig
    >>> config = HelperConfig.from_file("~/.config/gh/extensions/gh-app-auth/config.yml")
    >>> sources = config.sources()
"""

from git_app_auth.config.settings import (
    AppSource,
    CredentialSource,
    HelperConfig,
    RuntimeSettings,
    SecretRef,
    TokenSource,
)

__all__ = ["AppSource", "CredentialSource", "HelperConfig", "RuntimeSettings", "SecretRef", "TokenSource"]
