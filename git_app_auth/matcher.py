"""Route a credential request to the best matching configured source.

Patterns are URL prefixes compared segment by segment:

- ``github.com`` matches every repository on that host
- ``github.com/org`` matches every repository of ``org``
- ``github.com/*/repo`` matches ``repo`` under any owner (``*`` stands for
  exactly one segment, never part of one)

When several sources match, the one whose best pattern matched the most
literal characters wins; ties go to the higher ``priority`` and then to
the source declared first. Resolution therefore never depends on dict or
set iteration order.
"""

from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from git_app_auth.config.settings import CredentialSource
from git_app_auth.exceptions import NoMatchError

log = structlog.get_logger(__name__)

WILDCARD = "*"


def _strip_scheme(value: str) -> str:
    if "://" in value:
        return value.split("://", 1)[1]
    return value


def split_key(value: str) -> list[str]:
    """Normalize a pattern or lookup key into lowercase path segments.

    The scheme and any userinfo are dropped, empty segments are removed and a
    trailing ``.git`` on the last segment is ignored.

    >>> split_key("https://GitHub.com/Org/Repo.git")
    ['github.com', 'org', 'repo']
    """
    value = _strip_scheme(value.strip())
    host, _, path = value.partition("/")
    host = host.rpartition("@")[2]
    segments = [host, *path.split("/")]
    segments = [segment.lower() for segment in segments if segment]
    if len(segments) > 1 and segments[-1].endswith(".git"):
        segments[-1] = segments[-1][: -len(".git")]
    return segments


def build_lookup_key(host: str, path: str = "") -> str:
    """Join host and path into the canonical ``host/org/repo`` lookup key."""
    return "/".join(split_key(f"{host}/{path}"))


def match_length(pattern: str, candidate: str) -> int | None:
    """Literal characters matched by ``pattern`` against ``candidate``.

    Returns:
        Sum of the lengths of the literal (non-wildcard) pattern segments, or
        None if the pattern does not match. A pattern longer than the
        candidate never matches; a shorter one matches as a prefix.
    """
    pattern_segments = split_key(pattern)
    candidate_segments = split_key(candidate)
    if not pattern_segments or len(pattern_segments) > len(candidate_segments):
        return None

    literal = 0
    for expected, actual in zip(pattern_segments, candidate_segments, strict=False):
        if expected == WILDCARD:
            continue
        if expected != actual:
            return None
        literal += len(expected)
    return literal


@dataclass(frozen=True)
class Match:
    """A source together with the pattern that selected it."""

    source: CredentialSource
    pattern: str
    literal_length: int
    index: int


class SourceMatcher:
    """Resolve lookup keys against an ordered, read-only source list.

    Example:
        >>> matcher = SourceMatcher(config.sources())
        >>> match = matcher.resolve("github.com/org/repo")
        >>> match.source.name
        'Org App'
    """

    def __init__(self, sources: Sequence[CredentialSource]) -> None:
        self._sources = tuple(sources)

    @property
    def sources(self) -> tuple[CredentialSource, ...]:
        return self._sources

    def candidates(self, lookup_key: str) -> list[Match]:
        """Every matching source, best first."""
        matches: list[Match] = []
        for index, source in enumerate(self._sources):
            best: tuple[int, str] | None = None
            for pattern in source.patterns:
                length = match_length(pattern, lookup_key)
                if length is not None and (best is None or length > best[0]):
                    best = (length, pattern)
            if best is not None:
                matches.append(Match(source=source, pattern=best[1], literal_length=best[0], index=index))

        matches.sort(key=lambda m: (-m.literal_length, -m.source.priority, m.index))
        return matches

    def resolve(self, lookup_key: str) -> Match:
        """Best matching source for ``lookup_key``.

        Raises:
            NoMatchError: If no source matches. Callers on the credential
                protocol path treat this as "decline to answer".
        """
        matches = self.candidates(lookup_key)
        if not matches:
            log.debug("source_not_matched", lookup_key=lookup_key)
            raise NoMatchError(lookup_key)

        best = matches[0]
        log.debug(
            "source_matched",
            lookup_key=lookup_key,
            source=best.source.name,
            pattern=best.pattern,
            candidates=len(matches),
        )
        return best

    def resolve_exact(self, pattern: str) -> Match:
        """Source that declares ``pattern`` itself.

        Used when the helper is registered for one specific pattern: git only
        invokes it for URLs under that pattern, so the request path is not
        consulted. Among several sources declaring it, priority then
        declaration order decide.

        Raises:
            NoMatchError: If no source declares the pattern
        """
        wanted = split_key(pattern)
        matches = [
            Match(source=source, pattern=declared, literal_length=len("".join(wanted)), index=index)
            for index, source in enumerate(self._sources)
            for declared in source.patterns
            if split_key(declared) == wanted
        ]
        if not matches:
            log.debug("pattern_not_configured", pattern=pattern)
            raise NoMatchError(pattern)

        matches.sort(key=lambda m: (-m.source.priority, m.index))
        return matches[0]
