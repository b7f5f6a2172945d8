"""Tests for the git-credential and test commands."""

from unittest.mock import patch

import httpx
import pytest

from git_app_auth.github.client import GitHubAppClient

ISSUED = "ghs_" + "c" * 36


class FakeGitHub:
    def __init__(self):
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if request.url.path.endswith("/installation"):
            return httpx.Response(200, json={"id": 4242})
        return httpx.Response(201, json={"token": ISSUED, "expires_at": "2099-01-01T00:00:00Z"})

    def factory(self, host, timeout):
        transport = httpx.MockTransport(self)
        return GitHubAppClient(host=host, timeout=timeout, http_client=httpx.Client(transport=transport))


@pytest.fixture
def github():
    fake = FakeGitHub()
    with patch("git_app_auth.protocol.handler.GitHubAppClient", side_effect=fake.factory):
        yield fake


@pytest.fixture
def configured(invoke, helper_config, memory_keyring, private_key_pem):
    helper_config.save(invoke.config_path)
    memory_keyring.set("app-12345", "private_key", private_key_pem)
    memory_keyring.set("pat-personal", "token", "ghp_personaltoken")
    return invoke


@pytest.fixture
def auto_env(monkeypatch, key_file):
    monkeypatch.setenv("GH_APP_ID", "777")
    monkeypatch.setenv("GH_APP_PRIVATE_KEY_PATH", str(key_file))


class TestGitCredential:
    def test_get_app_credentials(self, configured, github):
        result = configured("git-credential", "get", input="protocol=https\nhost=github.com\npath=myorg/repo.git\n\n")

        assert result.exit_code == 0
        assert result.output == f"username=x-access-token\npassword={ISSUED}\n"
        assert len(github.requests) == 1

    def test_get_pat_credentials(self, configured, github):
        result = configured("git-credential", "get", input="protocol=https\nhost=github.com\npath=me/notes\n\n")

        assert result.exit_code == 0
        assert result.output == "username=me\npassword=ghp_personaltoken\n"

    def test_unmatched_is_silent_success(self, configured, github):
        result = configured("git-credential", "get", input="protocol=https\nhost=gitlab.com\npath=x/y\n\n")

        assert result.exit_code == 0
        assert result.output == ""

    def test_pattern_override(self, configured, github):
        result = configured(
            "git-credential", "--pattern", "github.com/myorg", "get", input="protocol=https\nhost=github.com\n\n"
        )

        assert result.exit_code == 0
        assert f"password={ISSUED}" in result.output

    @pytest.mark.parametrize("operation", ["store", "erase"])
    def test_store_and_erase_are_noops(self, configured, github, operation):
        result = configured(
            "git-credential", operation, input="protocol=https\nhost=github.com\npath=myorg/r\npassword=x\n\n"
        )

        assert result.exit_code == 0
        assert result.output == ""
        assert github.requests == []

    def test_missing_config_is_fatal(self, invoke, github):
        result = invoke("git-credential", "get", input="host=github.com\n\n")

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output

    def test_missing_secret_is_fatal(self, invoke, helper_config, github):
        helper_config.save(invoke.config_path)

        result = invoke("git-credential", "get", input="host=github.com\npath=myorg/repo\n\n")

        assert result.exit_code == 1
        assert "username=" not in result.output
        assert "Private key for source 'Org App' not found" in result.output


class TestGitCredentialAutoMode:
    def test_environment_app_answers_without_config(self, invoke, auto_env, github):
        result = invoke(
            "git-credential",
            "--pattern",
            "github.com",
            "get",
            input="protocol=https\nhost=github.com\npath=someorg/repo.git\n\n",
        )

        assert result.exit_code == 0, result.output
        assert result.output == f"username=x-access-token\npassword={ISSUED}\n"
        assert [r.url.path for r in github.requests] == [
            "/repos/someorg/repo/installation",
            "/app/installations/4242/access_tokens",
        ]

    def test_environment_app_takes_precedence_over_config(self, configured, auto_env, github):
        result = configured("git-credential", "get", input="protocol=https\nhost=github.com\npath=me/notes\n\n")

        assert result.exit_code == 0
        assert "ghp_personaltoken" not in result.output
        assert f"password={ISSUED}" in result.output

    def test_only_one_variable_set_uses_config(self, invoke, monkeypatch, github):
        monkeypatch.setenv("GH_APP_ID", "777")

        result = invoke("git-credential", "get", input="host=github.com\npath=o/r\n\n")

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output


class TestTestCommand:
    def test_prints_redacted_password(self, configured, github):
        result = configured("test", "--repo", "https://github.com/myorg/repo")

        assert result.exit_code == 0
        assert "Authentication succeeded for github.com/myorg/repo" in result.output
        assert "Source: Org App" in result.output
        assert "<redacted:github_token:40>" in result.output
        assert ISSUED not in result.output

    def test_url_without_scheme(self, configured, github):
        result = configured("test", "--repo", "github.com/me/notes")

        assert result.exit_code == 0
        assert "ghp_personaltoken" not in result.output

    def test_no_match(self, configured, github):
        result = configured("test", "--repo", "https://gitlab.com/x/y")

        assert result.exit_code == 1
        assert "No configured source matches gitlab.com/x/y" in result.output


class TestGlobalOptions:
    def test_version(self, invoke):
        result = invoke("--version")

        assert result.exit_code == 0
        assert "git-app-auth" in result.output

    def test_invalid_log_level(self, invoke):
        result = invoke("--log-level", "LOUD", "list")

        assert result.exit_code == 1
        assert "invalid settings" in result.output
