"""GitHub App authentication: assertion minting, API calls and token caching."""

from git_app_auth.github.client import GitHubAppClient, InstallationToken, api_base_url
from git_app_auth.github.jwt_minter import JWTMinter, load_rsa_private_key
from git_app_auth.github.token_cache import CachedToken, InstallationTokenCache

__all__ = [
    "CachedToken",
    "GitHubAppClient",
    "InstallationToken",
    "InstallationTokenCache",
    "JWTMinter",
    "api_base_url",
    "load_rsa_private_key",
]
