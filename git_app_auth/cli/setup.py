"""CLI commands for registering credential sources.

``setup app`` registers a GitHub App installation; ``setup pat`` registers a
static personal access token. Secrets come either from a persistent file
(``--key-file`` / ``--token-file``) or from an environment variable
(``GH_APP_PRIVATE_KEY`` / ``GH_APP_TOKEN``), never both.

Secrets are stored in the OS keyring when it works. A keyring failure falls
back to the filesystem only when the secret came from a file, because an
environment variable will not be there at the next ``git fetch``.

Example:
    Register an App for an organization::

        $ git-app-auth setup app --app-id 12345 --key-file ~/.ssh/app.pem \\
            --patterns "github.com/myorg"
        $ git-app-auth gitconfig --sync
"""

import os
from pathlib import Path

import click
import structlog
from pydantic import ValidationError

from git_app_auth.cli.common import build_minter, build_store, fail, fail_with, get_settings, parse_patterns
from git_app_auth.config.settings import AppSource, HelperConfig, TokenSource, expand_path
from git_app_auth.enums import SecretKind, StorageBackend
from git_app_auth.exceptions import AssertionSigningError, ConfigurationError, ExchangeError, GitAppAuthError
from git_app_auth.github.client import GitHubAppClient
from git_app_auth.matcher import split_key
from git_app_auth.secrets.store import read_secret_file

log = structlog.get_logger(__name__)

PRIVATE_KEY_ENV = "GH_APP_PRIVATE_KEY"
TOKEN_ENV = "GH_APP_TOKEN"


def read_secret_input(file_path: Path | None, env_var: str, file_option: str) -> tuple[str, Path | None]:
    """Secret value and the persistent file it came from, if any.

    Raises:
        ConfigurationError: If both or neither input is supplied, or the secret is empty
        CredentialError: If the file is unreadable or too permissive
    """
    env_value = os.environ.get(env_var, "")
    if file_path is not None and env_value.strip():
        raise ConfigurationError(f"Use either {file_option} or {env_var}, not both")

    if file_path is not None:
        path = expand_path(file_path)
        value = read_secret_file(path)
        if not value.strip():
            raise ConfigurationError(f"Secret file is empty: {path}")
        return value, path
    if env_value.strip():
        return env_value, None
    raise ConfigurationError(f"Secret required: use {file_option} or set the {env_var} environment variable")


def installation_target(pattern: str) -> tuple[str, str]:
    """``(host, org)`` named by a pattern, for installation lookup.

    Raises:
        ConfigurationError: If the pattern does not name an organization
    """
    segments = split_key(pattern)
    if len(segments) < 2 or segments[1] == "*":
        raise ConfigurationError(f"Invalid pattern format: {pattern} (expected host/org or host/org/*)")
    return segments[0], segments[1]


def detect_installation_id(assertion: str, patterns: list[str], timeout: float) -> int:
    """Installation ID of the App on the organization of the first pattern.

    Returns 0 when detection fails; the installation is then discovered per
    repository when credentials are requested.
    """
    try:
        host, org = installation_target(patterns[0])
        with GitHubAppClient(host=host, timeout=timeout) as client:
            installation_id = client.find_installation_for_org(assertion, org)
    except (ConfigurationError, ExchangeError) as e:
        log.warning("installation_detection_failed", error=e.message)
        click.echo(click.style(f"Warning: could not detect installation ID: {e.message}", fg="yellow"), err=True)
        click.echo("  The installation will be looked up per repository at use time.", err=True)
        return 0

    click.echo(f"Auto-detected installation ID: {installation_id}")
    return installation_id


def _storage_summary(backend: StorageBackend, path: Path | None) -> list[str]:
    if backend is StorageBackend.KEYRING:
        lines = ["   Storage: OS keyring"]
        if path is not None:
            lines.append(f"   Fallback: {path}")
        return lines
    lines = ["   Storage: filesystem"]
    if path is not None:
        lines.append(f"   File: {path}")
    return lines


@click.group(name="setup")
def setup_group():
    """Register a GitHub App or personal access token.

    Examples:

        # GitHub App with a key file
        git-app-auth setup app --app-id 12345 --key-file app.pem --patterns "github.com/myorg"

        # GitHub App with the key in an environment variable (keyring required)
        GH_APP_PRIVATE_KEY="$(cat app.pem)" git-app-auth setup app --app-id 12345 --patterns "github.com/myorg"

        # Personal access token
        GH_APP_TOKEN=ghp_... git-app-auth setup pat --patterns "github.com/other-org" --name other
    """
    pass


@setup_group.command(name="app")
@click.option("--app-id", type=int, required=True, help="GitHub App ID")
@click.option(
    "--key-file",
    type=click.Path(path_type=Path),
    default=None,
    help=f"Path to the App private key (or set {PRIVATE_KEY_ENV})",
)
@click.option("--installation-id", type=int, default=0, show_default=True, help="Installation ID, 0 to auto-detect")
@click.option("--patterns", multiple=True, required=True, help="Repository patterns to match (repeatable)")
@click.option("--name", default=None, help="Friendly name for the App")
@click.option("--priority", type=int, default=5, show_default=True, help="Tie-breaker, higher wins")
@click.option("--use-filesystem", is_flag=True, help="Skip the keyring and use filesystem storage")
@click.pass_context
def setup_app(
    ctx: click.Context,
    app_id: int,
    key_file: Path | None,
    installation_id: int,
    patterns: tuple[str, ...],
    name: str | None,
    priority: int,
    use_filesystem: bool,
) -> None:
    """Register a GitHub App installation."""
    settings = get_settings(ctx)
    pattern_list = parse_patterns(patterns)
    if not pattern_list:
        fail("At least one pattern is required")
    if app_id <= 0:
        fail("--app-id must be a positive integer")
    if installation_id < 0:
        fail("--installation-id cannot be negative")

    try:
        config = HelperConfig.load_or_create(settings.config_path)
        private_key, key_path = read_secret_input(key_file, PRIVATE_KEY_ENV, "--key-file")
        if use_filesystem and key_path is None:
            fail("Filesystem storage requires --key-file")

        try:
            assertion = build_minter(settings).mint(app_id, private_key)
        except AssertionSigningError as e:
            fail(f"JWT generation test failed: {e.message}")

        if installation_id == 0:
            installation_id = detect_installation_id(assertion, pattern_list, settings.http_timeout)

        store = build_store(settings)
        requested = StorageBackend.FILESYSTEM if use_filesystem else StorageBackend.KEYRING
        backend = store.put(
            f"app-{app_id}",
            SecretKind.PRIVATE_KEY,
            private_key,
            source_path=key_path,
            backend=requested,
        )
        if requested is StorageBackend.KEYRING and backend is StorageBackend.FILESYSTEM:
            click.echo(click.style("Warning: keyring unavailable, using filesystem storage", fg="yellow"), err=True)

        app = AppSource(
            name=name or f"GitHub App {app_id}",
            app_id=app_id,
            installation_id=installation_id,
            patterns=pattern_list,
            priority=priority,
            private_key_source=backend,
            private_key_path=key_path,
        )
        config.add_or_update_app(app)
        config.save(settings.config_path)
    except ValidationError as e:
        fail(f"Invalid app configuration: {e}")
    except GitAppAuthError as e:
        fail_with(e)

    log.info("source_registered", source=app.name, kind="app", backend=str(backend))
    click.echo(click.style(f"Successfully configured GitHub App '{app.name}'", fg="green"))
    click.echo(f"   App ID: {app_id}")
    if installation_id:
        click.echo(f"   Installation ID: {installation_id}")
    click.echo(f"   Patterns: {', '.join(pattern_list)}")
    click.echo(f"   Priority: {priority}")
    for line in _storage_summary(backend, key_path):
        click.echo(line)
    click.echo("\nNext steps:")
    click.echo("   1. Test authentication: git-app-auth test --repo <repository-url>")
    click.echo("   2. Register the helper with git: git-app-auth gitconfig --sync --global")


@setup_group.command(name="pat")
@click.option(
    "--token-file",
    type=click.Path(path_type=Path),
    default=None,
    help=f"Path to a file holding the token (or set {TOKEN_ENV})",
)
@click.option("--patterns", multiple=True, required=True, help="Repository patterns to match (repeatable)")
@click.option("--name", default=None, help="Friendly name for the token")
@click.option("--username", default=None, help="HTTP username sent with the token")
@click.option("--priority", type=int, default=5, show_default=True, help="Tie-breaker, higher wins")
@click.option("--use-filesystem", is_flag=True, help="Skip the keyring and use filesystem storage")
@click.pass_context
def setup_pat(
    ctx: click.Context,
    token_file: Path | None,
    patterns: tuple[str, ...],
    name: str | None,
    username: str | None,
    priority: int,
    use_filesystem: bool,
) -> None:
    """Register a personal access token."""
    settings = get_settings(ctx)
    pattern_list = parse_patterns(patterns)
    if not pattern_list:
        fail("At least one pattern is required")

    try:
        config = HelperConfig.load_or_create(settings.config_path)
        token, token_path = read_secret_input(token_file, TOKEN_ENV, "--token-file")
        token = token.strip()
        if use_filesystem and token_path is None:
            fail("Filesystem storage requires --token-file")

        pat_name = name or f"PAT for {pattern_list[0]}"
        store = build_store(settings)
        backend = store.put(
            f"pat-{pat_name}",
            SecretKind.TOKEN,
            token,
            source_path=token_path,
            backend=StorageBackend.FILESYSTEM if use_filesystem else StorageBackend.KEYRING,
        )

        pat = TokenSource(
            name=pat_name,
            patterns=pattern_list,
            priority=priority,
            username=username,
            token_source=backend,
            token_path=token_path,
        )
        config.add_or_update_pat(pat)
        config.save(settings.config_path)
    except ValidationError as e:
        fail(f"Invalid PAT configuration: {e}")
    except GitAppAuthError as e:
        fail_with(e)

    log.info("source_registered", source=pat.name, kind="pat", backend=str(backend))
    click.echo(click.style(f"Successfully configured PAT '{pat.name}'", fg="green"))
    click.echo(f"   Patterns: {', '.join(pattern_list)}")
    click.echo(f"   Priority: {priority}")
    if username:
        click.echo(f"   Username: {username}")
    for line in _storage_summary(backend, token_path):
        click.echo(line)
    click.echo("\nNext steps:")
    click.echo("   1. Register the helper with git: git-app-auth gitconfig --sync --global")
