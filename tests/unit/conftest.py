"""Fixtures for CLI command tests."""

from contextlib import ExitStack
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from git_app_auth.main import cli

STORE_FACTORIES = (
    "git_app_auth.main.build_store",
    "git_app_auth.cli.setup.build_store",
    "git_app_auth.cli.sources.build_store",
)


@pytest.fixture
def cli_runner():
    """Create CLI runner for testing Click commands."""
    return CliRunner()


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "GH_APP_PRIVATE_KEY",
        "GH_APP_TOKEN",
        "GH_APP_ID",
        "GH_APP_PRIVATE_KEY_PATH",
        "GH_APP_AUTH_CONFIG",
        "GH_APP_AUTH_DEBUG_LOG",
        "GH_APP_AUTH_LOG_LEVEL",
        "GH_APP_AUTH_SECRETS_DIR",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def cli_store(memory_store):
    """Store handed to CLI commands; override to simulate a headless keyring."""
    return memory_store


@pytest.fixture
def invoke(cli_runner, clean_env, cli_store, tmp_path):
    """Run ``git-app-auth --config <tmp config> ...`` against ``cli_store``."""
    config_path = tmp_path / "config" / "config.yml"

    def run(*args, input=None):
        return cli_runner.invoke(cli, ["--config", str(config_path), *args], input=input)

    run.config_path = config_path

    with ExitStack() as stack:
        stack.enter_context(patch("git_app_auth.main.configure_logging"))
        for target in STORE_FACTORIES:
            stack.enter_context(patch(target, return_value=cli_store))
        yield run
