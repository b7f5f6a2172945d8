"""CLI command that registers this helper in git's configuration."""

import subprocess  # nosec B404 # git config is run with argv lists built in gitconfig.py

import click
import structlog

from git_app_auth.cli.common import fail, fail_with, get_settings
from git_app_auth.config.settings import HelperConfig
from git_app_auth.exceptions import GitAppAuthError
from git_app_auth.gitconfig import (
    LIST_HELPERS_REGEXP,
    GitConfigCommand,
    build_auto_commands,
    build_clean_commands,
    build_sync_commands,
    find_executable,
    host_section,
    parse_helper_entries,
    path_scoped_hosts,
)

log = structlog.get_logger(__name__)


def run_git(args: list[str] | tuple[str, ...]) -> subprocess.CompletedProcess:
    return subprocess.run(list(args), capture_output=True, text=True, check=False)  # nosec B603 B607


def apply_commands(commands: list[GitConfigCommand], dry_run: bool) -> int:
    """Run (or print) commands; returns the number of unexpected failures."""
    failures = 0
    for command in commands:
        if dry_run:
            click.echo(" ".join(command.args))
            continue

        result = run_git(command.args)
        if result.returncode != 0 and not command.may_fail:
            failures += 1
            log.warning("git_config_failed", args=list(command.args[:4]), returncode=result.returncode)
            click.echo(click.style(f"Failed: {command.description}", fg="red"), err=True)
            if result.stderr.strip():
                click.echo(f"   {result.stderr.strip()}", err=True)
        elif not command.may_fail:
            click.echo(command.description)
    return failures


def read_generic_helpers(hosts: list[str], scope: str) -> dict[str, list[str]]:
    """Current ``credential.https://<host>.helper`` values for each host."""
    helpers: dict[str, list[str]] = {}
    for host in hosts:
        result = run_git(["git", "config", scope, "--get-all", f"{host_section(host)}.helper"])
        # git exits 1 when the key is unset
        helpers[host] = result.stdout.splitlines() if result.returncode == 0 else []
    return helpers


@click.command(name="gitconfig")
@click.option("--sync", is_flag=True, help="Register the helper for every configured pattern")
@click.option("--clean", is_flag=True, help="Remove every helper entry pointing at this tool")
@click.option("--global", "scope_global", is_flag=True, help="Use the global git config (default)")
@click.option("--local", "scope_local", is_flag=True, help="Use the current repository's git config")
@click.option(
    "--auto",
    "auto_mode",
    is_flag=True,
    help="Register one global helper for github.com served by GH_APP_ID / GH_APP_PRIVATE_KEY_PATH",
)
@click.option("--dry-run", is_flag=True, help="Print the git commands instead of running them")
@click.pass_context
def gitconfig_command(
    ctx: click.Context,
    sync: bool,
    clean: bool,
    scope_global: bool,
    scope_local: bool,
    auto_mode: bool,
    dry_run: bool,
) -> None:
    """Manage git credential helper configuration.

    Examples:

        git-app-auth gitconfig --sync

        git-app-auth gitconfig --sync --local

        GH_APP_ID=12345 GH_APP_PRIVATE_KEY_PATH=~/app.pem git-app-auth gitconfig --sync --auto

        git-app-auth gitconfig --clean --global
    """
    if sync == clean:
        fail("Specify exactly one of --sync or --clean")
    if sum((scope_global, scope_local, auto_mode)) > 1:
        fail("Cannot use --global, --local and --auto together")
    scope = "--local" if scope_local else "--global"

    if clean:
        result = run_git(["git", "config", scope, "--get-regexp", LIST_HELPERS_REGEXP])
        # git exits 1 when nothing matches
        commands = build_clean_commands(parse_helper_entries(result.stdout), scope) if result.returncode == 0 else []
        if not commands:
            click.echo("No git-app-auth helper entries found")
            return
        failures = apply_commands(commands, dry_run)
        if not dry_run:
            click.echo(click.style(f"Removed {len(commands) - failures} credential helper(s)", fg="green"))
        if failures:
            ctx.exit(1)
        return

    settings = get_settings(ctx)
    try:
        if auto_mode:
            commands = build_auto_commands(find_executable(), scope)
        else:
            config = HelperConfig.from_file(settings.config_path)
            generic_helpers = read_generic_helpers(path_scoped_hosts(config), scope)
            commands = build_sync_commands(config, find_executable(), scope, generic_helpers)
    except GitAppAuthError as e:
        fail_with(e)

    if auto_mode and settings.auto_source() is None:
        click.echo(
            click.style("Warning: set GH_APP_ID and GH_APP_PRIVATE_KEY_PATH where git runs the helper", fg="yellow"),
            err=True,
        )

    failures = apply_commands(commands, dry_run)
    if not dry_run:
        configured = sum(1 for command in commands if command.registers_helper) - failures
        click.echo(click.style(f"Configured {configured} credential helper(s) ({scope})", fg="green"))
    if failures:
        ctx.exit(1)
