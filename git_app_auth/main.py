"""CLI entry point for git-app-auth."""

import sys
from pathlib import Path

import click
import structlog
from pydantic import ValidationError

from git_app_auth import __version__
from git_app_auth.cli.common import build_minter, build_store, fail, fail_with, get_settings, safety_margin
from git_app_auth.cli.gitconfig import gitconfig_command
from git_app_auth.cli.setup import setup_group
from git_app_auth.cli.sources import list_command, remove_group
from git_app_auth.config.settings import CredentialSource, HelperConfig, RuntimeSettings
from git_app_auth.enums import Operation
from git_app_auth.exceptions import GitAppAuthError, NoMatchError
from git_app_auth.protocol.handler import ProtocolHandler
from git_app_auth.protocol.request import CredentialRequest
from git_app_auth.utils.logging_config import configure_logging
from git_app_auth.utils.redaction import redact_secret

log = structlog.get_logger(__name__)


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to the source list (default: $GH_APP_AUTH_CONFIG or ~/.config/gh/extensions/gh-app-auth/config.yml)",
)
@click.option("--log-level", default=None, help="Logging level (default: WARNING)")
@click.version_option(__version__, prog_name="git-app-auth")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str | None) -> None:
    """git-app-auth: git credentials from GitHub Apps and access tokens."""
    overrides = {}
    if config_path is not None:
        overrides["config"] = config_path
    if log_level is not None:
        overrides["log_level"] = log_level

    try:
        settings = RuntimeSettings(**overrides)
    except ValidationError as e:
        click.echo(f"Error: invalid settings: {e}", err=True)
        sys.exit(1)

    configure_logging(settings.log_level, settings.debug_log)
    ctx.obj = {"settings": settings}


def load_sources(settings: RuntimeSettings) -> list[CredentialSource]:
    """The automatic-mode App when its environment is set, else the source list."""
    auto = settings.auto_source()
    if auto is not None:
        log.debug("auto_mode_source", app_id=auto.app_id)
        return [auto]
    return HelperConfig.from_file(settings.config_path).sources()


def build_handler(
    settings: RuntimeSettings, sources: list[CredentialSource], pattern: str | None = None
) -> ProtocolHandler:
    return ProtocolHandler(
        sources,
        build_store(settings),
        minter=build_minter(settings),
        pattern_override=pattern,
        safety_margin=safety_margin(settings),
        http_timeout=settings.http_timeout,
    )


@cli.command(name="git-credential")
@click.option("--pattern", default=None, help="Pattern this helper was registered for")
@click.argument("operation")
@click.pass_context
def git_credential(ctx: click.Context, pattern: str | None, operation: str) -> None:
    """Git credential helper (called by git, not by hand).

    Reads the request from stdin and writes ``username``/``password`` to
    stdout for ``get``. Prints nothing when no source matches so git can try
    its next helper. With GH_APP_ID and GH_APP_PRIVATE_KEY_PATH set, that App
    answers for github.com and no source list is read.
    """
    settings = get_settings(ctx)
    try:
        handler = build_handler(settings, load_sources(settings), pattern)
        try:
            handler.handle(operation, sys.stdin, sys.stdout)
        finally:
            handler.close()
    except GitAppAuthError as e:
        log.error("credential_flow_error", error_type=type(e).__name__, error=e.message)
        click.echo(f"git-app-auth: {e}", err=True)
        sys.exit(1)


@cli.command(name="test")
@click.option("--repo", required=True, help="Repository URL, e.g. https://github.com/org/repo")
@click.pass_context
def test_command(ctx: click.Context, repo: str) -> None:
    """Resolve a credential for a repository without involving git.

    The issued password is shown in redacted form only.
    """
    settings = get_settings(ctx)
    request = CredentialRequest(operation=Operation.GET)
    request.apply("url", repo if "://" in repo else f"https://{repo}")
    if not request.host:
        fail(f"Cannot parse repository URL: {repo}")

    try:
        handler = build_handler(settings, load_sources(settings))
        try:
            source = handler.match(request).source
            attributes = handler.credentials_for(request)
        finally:
            handler.close()
    except NoMatchError:
        fail(f"No configured source matches {request.lookup_key}", "Check patterns with: git-app-auth list")
    except GitAppAuthError as e:
        fail_with(e)

    click.echo(click.style(f"Authentication succeeded for {request.lookup_key}", fg="green"))
    click.echo(f"   Source: {source.name}")
    click.echo(f"   Username: {attributes['username']}")
    click.echo(f"   Password: {redact_secret(attributes['password'])}")


cli.add_command(setup_group)
cli.add_command(list_command)
cli.add_command(list_command, name="ls")
cli.add_command(remove_group)
cli.add_command(gitconfig_command)


if __name__ == "__main__":
    cli()
