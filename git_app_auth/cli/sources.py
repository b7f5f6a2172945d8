"""CLI commands for inspecting and removing registered sources."""

import json

import click
import structlog
import yaml

from git_app_auth.cli.common import build_store, fail_with, get_settings
from git_app_auth.config.settings import AppSource, CredentialSource, HelperConfig
from git_app_auth.enums import SecretKind
from git_app_auth.exceptions import CredentialError, GitAppAuthError
from git_app_auth.secrets.store import SecretStore

log = structlog.get_logger(__name__)


def describe_source(source: CredentialSource) -> dict:
    """Display form of a source. Holds secret locations, never secret values."""
    if isinstance(source, AppSource):
        return {
            "name": source.name,
            "type": "app",
            "app_id": source.app_id,
            "installation_id": source.installation_id or "auto",
            "priority": source.priority,
            "patterns": list(source.patterns),
            "storage": str(source.private_key_source),
            "private_key_path": str(source.private_key_path) if source.private_key_path else None,
        }
    return {
        "name": source.name,
        "type": "pat",
        "username": source.username,
        "priority": source.priority,
        "patterns": list(source.patterns),
        "storage": str(source.token_source),
        "token_path": str(source.token_path) if source.token_path else None,
    }


def verify_source(store: SecretStore, source: CredentialSource) -> str:
    """``ok`` if the source's secret can be read, else the failure message."""
    ref = source.key_ref if isinstance(source, AppSource) else source.token_ref
    try:
        store.get_ref(ref)
    except CredentialError as e:
        return e.message
    return "ok"


def _render_table(rows: list[dict]) -> str:
    headers = ["NAME", "TYPE", "ID", "INSTALLATION", "PRIORITY", "STORAGE", "PATTERNS"]
    table = [
        [
            row["name"],
            row["type"],
            str(row.get("app_id", "-")),
            str(row.get("installation_id", "-")),
            str(row["priority"]),
            row["storage"],
            ", ".join(row["patterns"]),
        ]
        for row in rows
    ]
    if any("status" in row for row in rows):
        headers.append("STATUS")
        for line, row in zip(table, rows, strict=True):
            line.append(row["status"])

    widths = [max(len(cell) for cell in column) for column in zip(headers, *table, strict=True)]
    lines = []
    for line in [headers, *table]:
        lines.append("  ".join(cell.ljust(width) for cell, width in zip(line, widths, strict=True)).rstrip())
    return "\n".join(lines)


@click.command(name="list")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json", "yaml"]),
    default="table",
    show_default=True,
    help="Output format",
)
@click.option("--verify", is_flag=True, help="Check that each source's secret is readable")
@click.option("--quiet", "-q", is_flag=True, help="Only print source identifiers (app:<id>, pat:<name>)")
@click.pass_context
def list_command(ctx: click.Context, output_format: str, verify: bool, quiet: bool) -> None:
    """List registered GitHub Apps and tokens (alias: ls)."""
    settings = get_settings(ctx)
    try:
        config = HelperConfig.load_or_create(settings.config_path)
    except GitAppAuthError as e:
        fail_with(e)

    if quiet:
        for source in config.sources():
            click.echo(f"app:{source.app_id}" if isinstance(source, AppSource) else f"pat:{source.name}")
        return

    rows = [describe_source(source) for source in config.sources()]
    if verify:
        store = build_store(settings)
        for row, source in zip(rows, config.sources(), strict=True):
            row["status"] = verify_source(store, source)

    if output_format == "json":
        click.echo(json.dumps(rows, indent=2))
    elif output_format == "yaml":
        click.echo(yaml.safe_dump(rows, sort_keys=False), nl=False)
    elif not rows:
        click.echo("No GitHub Apps or tokens configured. Run 'git-app-auth setup app' first.")
    else:
        click.echo(_render_table(rows))


@click.group(name="remove")
def remove_group():
    """Remove a registered source and its stored secret."""
    pass


@remove_group.command(name="app")
@click.option("--app-id", type=int, required=True, help="GitHub App ID to remove")
@click.pass_context
def remove_app(ctx: click.Context, app_id: int) -> None:
    """Remove a GitHub App."""
    settings = get_settings(ctx)
    try:
        config = HelperConfig.load_or_create(settings.config_path)
        app = config.remove_app(app_id)
        if app is None:
            click.echo(click.style(f"Error: no GitHub App with ID {app_id} is configured", fg="red"), err=True)
            ctx.exit(1)
        # Other installations of the same App keep using the stored key
        if config.get_app(app_id) is None:
            build_store(settings).delete(app.secret_id, SecretKind.PRIVATE_KEY)
        config.save(settings.config_path)
    except GitAppAuthError as e:
        fail_with(e)

    log.info("source_removed", source=app.name, kind="app")
    click.echo(click.style(f"Removed GitHub App '{app.name}' (ID: {app_id})", fg="green"))


@remove_group.command(name="pat")
@click.option("--name", required=True, help="Name of the token to remove")
@click.pass_context
def remove_pat(ctx: click.Context, name: str) -> None:
    """Remove a personal access token."""
    settings = get_settings(ctx)
    try:
        config = HelperConfig.load_or_create(settings.config_path)
        pat = config.remove_pat(name)
        if pat is None:
            click.echo(click.style(f"Error: no token named '{name}' is configured", fg="red"), err=True)
            ctx.exit(1)
        build_store(settings).delete(pat.secret_id, SecretKind.TOKEN)
        config.save(settings.config_path)
    except GitAppAuthError as e:
        fail_with(e)

    log.info("source_removed", source=pat.name, kind="pat")
    click.echo(click.style(f"Removed token '{pat.name}'", fg="green"))
