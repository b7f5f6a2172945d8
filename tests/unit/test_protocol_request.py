"""Tests for credential protocol encoding."""

import io

import pytest

from git_app_auth.enums import Operation
from git_app_auth.protocol.request import CredentialRequest, format_response


class TestParse:
    def test_host_and_path(self):
        stream = io.StringIO("protocol=https\nhost=github.com\npath=myorg/repo.git\n\n")

        request = CredentialRequest.parse(Operation.GET, stream)

        assert request.protocol == "https"
        assert request.host == "github.com"
        assert request.path == "myorg/repo.git"
        assert request.lookup_key == "github.com/myorg/repo"

    def test_stops_at_blank_line(self):
        stream = io.StringIO("host=github.com\n\nhost=evil.example.com\n")

        assert CredentialRequest.parse(Operation.GET, stream).host == "github.com"

    def test_eof_without_blank_line(self):
        assert CredentialRequest.parse(Operation.GET, io.StringIO("host=github.com")).host == "github.com"

    def test_url_attribute(self):
        stream = io.StringIO("url=https://user@github.example.com:8443/myorg/repo.git\n\n")

        request = CredentialRequest.parse(Operation.GET, stream)

        assert request.host == "github.example.com:8443"
        assert request.path == "myorg/repo.git"
        assert request.username == "user"

    def test_unknown_keys_and_malformed_lines_ignored(self):
        stream = io.StringIO("capability[]=authtype\nnonsense\nhost=github.com\nwwwauth[]=Basic\n\n")

        request = CredentialRequest.parse(Operation.GET, stream)

        assert request.host == "github.com"

    def test_crlf_line_endings(self):
        assert CredentialRequest.parse(Operation.GET, io.StringIO("host=github.com\r\n\r\n")).host == "github.com"

    def test_value_may_contain_equals(self):
        request = CredentialRequest.parse(Operation.STORE, io.StringIO("password=a=b\n\n"))

        assert request.password == "a=b"

    def test_password_not_in_repr(self):
        request = CredentialRequest.parse(Operation.STORE, io.StringIO("password=ghs_secretvalue\n\n"))

        assert "ghs_secretvalue" not in repr(request)


class TestRepository:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("myorg/repo.git", ("myorg", "repo")),
            ("myorg/repo", ("myorg", "repo")),
            ("/myorg/repo/", ("myorg", "repo")),
            ("myorg", None),
            ("", None),
        ],
    )
    def test_owner_and_repo(self, path, expected):
        assert CredentialRequest(operation=Operation.GET, host="github.com", path=path).repository == expected


class TestFormatResponse:
    def test_lines(self):
        assert format_response({"username": "x-access-token", "password": "ghs_x"}) == (
            "username=x-access-token\npassword=ghs_x\n"
        )

    @pytest.mark.parametrize("value", ["a\nhost=evil", "a\rb", "a\0b"])
    def test_injection_rejected(self, value):
        with pytest.raises(ValueError):
            format_response({"password": value})
