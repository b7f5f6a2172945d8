"""Tests for the exception hierarchy."""

import pytest

from git_app_auth.exceptions import (
    AssertionSigningError,
    ConfigurationError,
    CredentialError,
    ExchangeError,
    GitAppAuthError,
    InvalidKeyError,
    KeyPermissionError,
    NoMatchError,
    SecretNotFoundError,
)


class TestExceptions:
    @pytest.mark.parametrize(
        "error",
        [
            ConfigurationError("x"),
            NoMatchError("github.com/o/r"),
            SecretNotFoundError("x"),
            InvalidKeyError("x"),
            ExchangeError("x"),
        ],
    )
    def test_single_base(self, error):
        assert isinstance(error, GitAppAuthError)

    def test_credential_error_message_parts(self):
        error = KeyPermissionError("too open", reference="/k.pem", suggestion="chmod 600 /k.pem")

        assert error.message == "too open"
        assert str(error) == "too open (reference: /k.pem)\nSuggestion: chmod 600 /k.pem"
        assert isinstance(error, CredentialError)

    def test_exchange_error_status(self):
        error = ExchangeError("GitHub API POST failed", status_code=401)

        assert error.status_code == 401
        assert str(error) == "GitHub API POST failed (status 401)"

    def test_no_match_keeps_lookup_key(self):
        assert NoMatchError("github.com/o/r").lookup_key == "github.com/o/r"

    def test_invalid_key_is_signing_error(self):
        assert issubclass(InvalidKeyError, AssertionSigningError)
