"""Git credential protocol encoding.

Git writes ``key=value`` lines to the helper's stdin, terminated by a
blank line or EOF, and reads the same format back from stdout. Unknown
keys (``capability[]``, ``wwwauth[]``...) are ignored.
"""

from dataclasses import dataclass, field
from typing import TextIO
from urllib.parse import urlsplit

from git_app_auth.enums import Operation
from git_app_auth.matcher import build_lookup_key


@dataclass
class CredentialRequest:
    """Decoded credential request for one helper invocation."""

    operation: Operation
    protocol: str = ""
    host: str = ""
    path: str = ""
    username: str | None = None
    password: str | None = field(default=None, repr=False)

    @property
    def lookup_key(self) -> str:
        """``host/path`` key used to pick a credential source."""
        return build_lookup_key(self.host, self.path)

    @property
    def repository(self) -> tuple[str, str] | None:
        """``(owner, repo)`` named by the request path, if it names one."""
        parts = [part for part in self.path.split("/") if part]
        if len(parts) < 2:
            return None
        repo = parts[1][: -len(".git")] if parts[1].endswith(".git") else parts[1]
        return parts[0], repo

    def apply(self, key: str, value: str) -> None:
        """Set one protocol attribute; unrecognized keys are ignored."""
        if key == "url":
            self._apply_url(value)
        elif key == "protocol":
            self.protocol = value
        elif key == "host":
            self.host = value
        elif key == "path":
            self.path = value
        elif key == "username":
            self.username = value
        elif key == "password":
            self.password = value

    def _apply_url(self, url: str) -> None:
        parts = urlsplit(url)
        self.protocol = parts.scheme
        self.host = parts.hostname or ""
        if parts.port:
            self.host = f"{self.host}:{parts.port}"
        self.path = parts.path.lstrip("/")
        if parts.username:
            self.username = parts.username

    @classmethod
    def parse(cls, operation: Operation, stream: TextIO) -> "CredentialRequest":
        """Read attributes from ``stream`` until a blank line or EOF.

        Example:
            >>> CredentialRequest.parse(Operation.GET, io.StringIO("protocol=https\\nhost=github.com\\n\\n"))
            CredentialRequest(operation=<Operation.GET: 'get'>, protocol='https', host='github.com', ...)
        """
        request = cls(operation=operation)
        for raw_line in stream:
            line = raw_line.rstrip("\r\n")
            if not line:
                break
            key, sep, value = line.partition("=")
            if not sep:
                continue
            request.apply(key, value)
        return request


def format_response(attributes: dict[str, str]) -> str:
    """Encode response attributes as protocol lines.

    Raises:
        ValueError: If a key or value contains a newline or NUL, which would
            let a value inject extra attributes
    """
    lines = []
    for key, value in attributes.items():
        if any(ch in key + value for ch in ("\n", "\r", "\0")) or "=" in key:
            raise ValueError(f"Invalid characters in credential attribute {key!r}")
        lines.append(f"{key}={value}\n")
    return "".join(lines)
