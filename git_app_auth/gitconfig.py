"""Build the ``git config`` commands that register this helper.

Git selects credential helpers by URL context (``credential.<url>.helper``),
so every configured pattern becomes one helper entry invoked with
``--pattern``. Contexts narrower than a host only match when
``credential.<host>.useHttpPath`` is enabled, otherwise git strips the path
before consulting helpers. Git also stops at the first helper that
answers, so generic host helpers are moved after the path-scoped ones.

Nothing here executes git; callers get argv lists and decide whether to run
them.
"""

import os
import shutil
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from git_app_auth.config.settings import AUTO_MODE_HOST, AppSource, CredentialSource, HelperConfig
from git_app_auth.exceptions import ConfigurationError

EXECUTABLE_NAME = "git-app-auth"

# Helper values containing one of these belong to this tool
HELPER_MARKERS = ("git-app-auth", "gh-app-auth", "gh app-auth")

_SHELL_SPECIAL = set("*?[] ")
LIST_HELPERS_REGEXP = r"^credential\..*\.helper$"


@dataclass(frozen=True)
class GitConfigCommand:
    """One ``git config`` invocation.

    Attributes:
        args: Full argv, starting with ``git``
        description: Human-readable summary for ``--dry-run`` and progress output
        may_fail: Whether a non-zero exit is expected (e.g. unsetting a missing key)
        registers_helper: Whether the command adds one of this tool's helpers
    """

    args: tuple[str, ...]
    description: str
    may_fail: bool = False
    registers_helper: bool = False


def _strip_scheme(pattern: str) -> str:
    for prefix in ("https://", "http://"):
        if pattern.startswith(prefix):
            return pattern[len(prefix) :]
    return pattern


def credential_context(pattern: str) -> str | None:
    """Git URL context for a pattern, or None if the pattern has no usable host.

    Wildcards are dropped and the context never goes deeper than the owner:

    >>> credential_context("github.com/myorg/*")
    'https://github.com/myorg'
    >>> credential_context("github.example.com/*/*")
    'https://github.example.com'
    """
    parts = _strip_scheme(pattern.strip()).split("/")
    host = parts[0]
    if not host or "." not in host:
        return None
    if len(parts) >= 2 and parts[1] and parts[1] != "*":
        return f"https://{host}/{parts[1]}"
    return f"https://{host}"


def context_host(pattern: str) -> str:
    return _strip_scheme(pattern.strip()).split("/")[0]


def helper_value(executable: str, pattern: str) -> str:
    """``credential.helper`` value that runs this tool for ``pattern``."""
    pattern_arg = f'"{pattern}"' if _SHELL_SPECIAL & set(pattern) else pattern
    return f'!"{executable}" git-credential --pattern {pattern_arg}'


def find_executable() -> str:
    """Absolute path of the installed ``git-app-auth`` command.

    Raises:
        ConfigurationError: If the command cannot be located
    """
    found = shutil.which(EXECUTABLE_NAME)
    if found:
        return os.path.realpath(found)

    argv0 = Path(sys.argv[0])
    if argv0.name == EXECUTABLE_NAME and argv0.exists():
        return os.path.realpath(argv0)
    raise ConfigurationError(f"{EXECUTABLE_NAME} executable not found in PATH")


def _source_label(source: CredentialSource) -> str:
    if isinstance(source, AppSource):
        return f"GitHub App {source.name} (ID: {source.app_id})"
    return f"Personal Access Token {source.name}"


def _is_own_helper(value: str) -> bool:
    return any(marker in value for marker in HELPER_MARKERS)


def host_section(host: str) -> str:
    return f"credential.https://{host}"


def path_scoped_hosts(config: HelperConfig) -> list[str]:
    """Hosts with at least one pattern narrower than the host itself.

    Their generic ``credential.https://<host>.helper`` entries must come
    after the path-scoped helpers in the config file, or git uses them
    first and never reaches this tool.
    """
    hosts: list[str] = []
    for source in config.sources():
        for pattern in source.patterns:
            context = credential_context(pattern)
            host = context_host(pattern)
            if context is not None and context != f"https://{host}" and host not in hosts:
                hosts.append(host)
    return hosts


def build_sync_commands(
    config: HelperConfig,
    executable: str,
    scope: str = "--global",
    generic_helpers: Mapping[str, Sequence[str]] | None = None,
) -> list[GitConfigCommand]:
    """Commands that point git at this helper for every configured pattern.

    Each context is cleared once before its first helper is added, so
    several patterns sharing a context all stay registered. Path-scoped
    helpers are registered before host-level ones.

    Args:
        config: Source list
        executable: Absolute path of this tool
        scope: ``--global`` or ``--local``
        generic_helpers: Existing ``credential.https://<host>.helper``
            values per host from ``path_scoped_hosts``. The host section is
            removed first and these helpers (other than this tool's own) are
            re-added at the end, after the path-scoped helpers.

    Raises:
        ConfigurationError: If the config has no source or no usable pattern
    """
    config.validate_not_empty()

    path_hosts = path_scoped_hosts(config)
    generic_helpers = generic_helpers or {}
    reordered = [host for host in path_hosts if host in generic_helpers]

    commands: list[GitConfigCommand] = [
        GitConfigCommand(
            args=("git", "config", scope, "--remove-section", host_section(host)),
            description=f"Clear generic settings for {host}",
            may_fail=True,
        )
        for host in reordered
    ]

    registrations: list[tuple[str, str, CredentialSource]] = []
    seen_patterns: set[str] = set()
    for source in config.sources():
        for pattern in source.patterns:
            if pattern in seen_patterns:
                continue
            context = credential_context(pattern)
            if context is None:
                continue
            seen_patterns.add(pattern)
            registrations.append((pattern, context, source))

    if not registrations:
        raise ConfigurationError("No valid patterns found to configure")

    # Host-level contexts last; the sort is stable so declaration order holds otherwise
    registrations.sort(key=lambda entry: entry[1] == f"https://{context_host(entry[0])}")

    cleared_contexts: set[str] = set()
    for pattern, context, source in registrations:
        key = f"credential.{context}.helper"
        if context not in cleared_contexts:
            cleared_contexts.add(context)
            commands.append(
                GitConfigCommand(
                    args=("git", "config", scope, "--unset-all", key),
                    description=f"Clear helpers for {context}",
                    may_fail=True,
                )
            )
        commands.append(
            GitConfigCommand(
                args=("git", "config", scope, "--add", key, helper_value(executable, pattern)),
                description=f"Configure {context} ({_source_label(source)}, pattern {pattern})",
                registers_helper=True,
            )
        )

    for host in path_hosts:
        commands.append(
            GitConfigCommand(
                args=("git", "config", scope, f"{host_section(host)}.useHttpPath", "true"),
                description=f"Enable useHttpPath for {host}",
            )
        )

    for host in reordered:
        for value in generic_helpers[host]:
            if not value.strip() or _is_own_helper(value):
                continue
            commands.append(
                GitConfigCommand(
                    args=("git", "config", scope, "--add", f"{host_section(host)}.helper", value.strip()),
                    description=f"Restore {host} helper after path-scoped helpers",
                )
            )
    return commands


def build_auto_commands(executable: str, scope: str = "--global") -> list[GitConfigCommand]:
    """Commands registering the single environment-configured App for every github.com repository."""
    key = f"{host_section(AUTO_MODE_HOST)}.helper"
    return [
        GitConfigCommand(
            args=("git", "config", scope, "--unset-all", key),
            description=f"Clear helpers for https://{AUTO_MODE_HOST}",
            may_fail=True,
        ),
        GitConfigCommand(
            args=("git", "config", scope, "--add", key, helper_value(executable, AUTO_MODE_HOST)),
            description=f"Configure https://{AUTO_MODE_HOST} (automatic mode)",
            registers_helper=True,
        ),
        GitConfigCommand(
            args=("git", "config", scope, f"{host_section(AUTO_MODE_HOST)}.useHttpPath", "true"),
            description=f"Enable useHttpPath for {AUTO_MODE_HOST}",
        ),
    ]


def parse_helper_entries(output: str) -> list[tuple[str, str]]:
    """Parse ``git config --get-regexp`` output into ``(key, value)`` pairs."""
    entries = []
    for line in output.splitlines():
        key, sep, value = line.strip().partition(" ")
        if sep:
            entries.append((key, value))
    return entries


def build_clean_commands(entries: list[tuple[str, str]], scope: str = "--global") -> list[GitConfigCommand]:
    """Commands removing every helper entry that runs this tool."""
    commands = []
    seen: set[str] = set()
    for key, value in entries:
        if key in seen or not _is_own_helper(value):
            continue
        seen.add(key)
        context = key.removeprefix("credential.").removesuffix(".helper")
        commands.append(
            GitConfigCommand(
                args=("git", "config", scope, "--unset-all", key),
                description=f"Remove {context}",
            )
        )
    return commands
