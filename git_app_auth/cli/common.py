"""Shared helpers for CLI commands."""

import sys
from datetime import timedelta
from typing import NoReturn

import click

from git_app_auth.config.settings import RuntimeSettings
from git_app_auth.exceptions import CredentialError, GitAppAuthError
from git_app_auth.github.jwt_minter import JWTMinter
from git_app_auth.secrets.store import SecretStore


def get_settings(ctx: click.Context) -> RuntimeSettings:
    return ctx.obj["settings"]


def build_store(settings: RuntimeSettings) -> SecretStore:
    master_password = settings.master_password.get_secret_value() if settings.master_password else None
    return SecretStore(
        base_dir=settings.secrets_path,
        keyring_timeout=settings.keyring_timeout,
        master_password=master_password,
    )


def build_minter(settings: RuntimeSettings) -> JWTMinter:
    return JWTMinter(lifetime=settings.jwt_lifetime, clock_skew=settings.jwt_clock_skew)


def safety_margin(settings: RuntimeSettings) -> timedelta:
    return timedelta(seconds=settings.token_safety_margin)


def parse_patterns(values: tuple[str, ...]) -> list[str]:
    """Flatten repeated and comma-separated ``--patterns`` values."""
    patterns = []
    for value in values:
        patterns.extend(part.strip() for part in value.split(",") if part.strip())
    return patterns


def fail(message: str, suggestion: str | None = None) -> NoReturn:
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    if suggestion:
        click.echo(click.style(f"Suggestion: {suggestion}", fg="yellow"), err=True)
    sys.exit(1)


def fail_with(error: GitAppAuthError) -> NoReturn:
    """Report a tool error on stderr and exit 1."""
    if isinstance(error, CredentialError):
        message = error.message
        if error.reference:
            message = f"{message} (reference: {error.reference})"
        fail(message, error.suggestion)
    fail(error.message)
