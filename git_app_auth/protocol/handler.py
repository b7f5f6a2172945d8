"""Credential protocol state machine.

One invocation walks::

    RECEIVED -> PARSED -> MATCHED | UNMATCHED -> RESOLVING -> RESOLVED -> EMITTED

``UNMATCHED`` ends the invocation silently: nothing is written to stdout and
the exit status is success, so git moves on to its next credential helper.
``store`` and ``erase`` are accepted and ignored because every credential
this helper hands out is generated per request.
"""

from collections.abc import Callable, Sequence
from datetime import timedelta
from typing import TextIO

import structlog

from git_app_auth.config.settings import AppSource, CredentialSource, TokenSource
from git_app_auth.enums import Operation
from git_app_auth.exceptions import ConfigurationError, NoMatchError, SecretNotFoundError
from git_app_auth.github.client import DEFAULT_TIMEOUT, GitHubAppClient
from git_app_auth.github.jwt_minter import JWTMinter
from git_app_auth.github.token_cache import DEFAULT_SAFETY_MARGIN, InstallationTokenCache
from git_app_auth.matcher import Match, SourceMatcher, split_key
from git_app_auth.protocol.request import CredentialRequest, format_response
from git_app_auth.secrets.store import SecretStore

log = structlog.get_logger(__name__)

APP_USERNAME = "x-access-token"
DEFAULT_TOKEN_USERNAME = "x-access-token"


class ProtocolHandler:
    """Answer git credential requests from the configured sources.

    The handler owns the per-host API clients, the installation token
    caches and the memo of discovered installation IDs for the lifetime of
    the process.

    Example:
        >>> handler = ProtocolHandler(config.sources(), SecretStore(secrets_dir))
        >>> handler.handle("get", sys.stdin, sys.stdout)
    """

    def __init__(
        self,
        sources: Sequence[CredentialSource],
        store: SecretStore,
        minter: JWTMinter | None = None,
        pattern_override: str | None = None,
        safety_margin: timedelta = DEFAULT_SAFETY_MARGIN,
        http_timeout: float = DEFAULT_TIMEOUT,
        client_factory: Callable[..., GitHubAppClient] | None = None,
    ) -> None:
        """Initialize the handler.

        Args:
            sources: Ordered, read-only credential sources
            store: Secret store for private keys and static tokens
            minter: Assertion minter (defaults to a 10 minute lifetime)
            pattern_override: Pattern the helper was registered for; when set,
                the source declaring it answers regardless of the request path
            safety_margin: Cache margin before token expiry
            http_timeout: Per-request API timeout in seconds
            client_factory: Callable building a ``GitHubAppClient`` for a host
        """
        self.matcher = SourceMatcher(sources)
        self.store = store
        self.minter = minter or JWTMinter()
        self.pattern_override = pattern_override or None
        self.safety_margin = safety_margin
        self.http_timeout = http_timeout
        self._client_factory = client_factory or GitHubAppClient
        self._clients: dict[str, GitHubAppClient] = {}
        self._caches: dict[str, InstallationTokenCache] = {}
        self._installations: dict[tuple[str, int, str, str], int] = {}

    def close(self) -> None:
        for client in self._clients.values():
            client.close()
        self._clients.clear()

    def client_for(self, host: str) -> GitHubAppClient:
        host = host.lower()
        if host not in self._clients:
            self._clients[host] = self._client_factory(host=host, timeout=self.http_timeout)
        return self._clients[host]

    def cache_for(self, host: str) -> InstallationTokenCache:
        host = host.lower()
        if host not in self._caches:
            self._caches[host] = InstallationTokenCache(self.client_for(host), safety_margin=self.safety_margin)
        return self._caches[host]

    def match(self, request: CredentialRequest) -> Match:
        """Pick the source for a request.

        Raises:
            NoMatchError: If no source applies
        """
        if self.pattern_override:
            return self.matcher.resolve_exact(self.pattern_override)
        return self.matcher.resolve(request.lookup_key)

    def credentials_for(self, request: CredentialRequest) -> dict[str, str]:
        """Resolve the username/password pair for a ``get`` request.

        Raises:
            NoMatchError: If no source applies
            GitAppAuthError: For any other resolution failure
        """
        match = self.match(request)
        source = match.source
        log.info("credential_flow_step", step="matched", source=source.name, pattern=match.pattern)

        if isinstance(source, AppSource):
            password = self._app_token(source, request)
            username = APP_USERNAME
        else:
            password = self._static_token(source)
            username = source.username or DEFAULT_TOKEN_USERNAME

        log.info("credential_flow_step", step="resolved", source=source.name)
        return {"username": username, "password": password}

    def _app_token(self, app: AppSource, request: CredentialRequest) -> str:
        try:
            private_key, backend = self.store.get_ref(app.key_ref)
        except SecretNotFoundError as e:
            raise SecretNotFoundError(
                f"Private key for source '{app.name}' not found",
                reference=e.reference,
                suggestion=f"Re-run: git-app-auth setup app --app-id {app.app_id}",
            ) from e
        log.debug("private_key_loaded", source=app.name, backend=str(backend))

        host = request.host or split_key(app.patterns[0])[0]

        def assertion_source() -> str:
            return self.minter.mint(app.app_id, private_key)

        installation_id = app.installation_id or self._discover_installation(app, host, request, assertion_source)
        return self.cache_for(host).get_token(installation_id, assertion_source)

    def _discover_installation(
        self,
        app: AppSource,
        host: str,
        request: CredentialRequest,
        assertion_source: Callable[[], str],
    ) -> int:
        repository = request.repository
        if repository is None:
            raise ConfigurationError(
                f"Source '{app.name}' has no installation_id and the request does not name a repository. "
                "Set installation_id or enable credential.useHttpPath for this host."
            )

        owner, repo = repository
        memo_key = (host.lower(), app.app_id, owner.lower(), repo.lower())
        if memo_key not in self._installations:
            self._installations[memo_key] = self.client_for(host).get_repository_installation(
                assertion_source(), owner, repo
            )
            log.info(
                "installation_discovered",
                source=app.name,
                repository=f"{owner}/{repo}",
                installation_id=self._installations[memo_key],
            )
        return self._installations[memo_key]

    def _static_token(self, source: TokenSource) -> str:
        try:
            token, backend = self.store.get_ref(source.token_ref)
        except SecretNotFoundError as e:
            raise SecretNotFoundError(
                f"Token for source '{source.name}' not found",
                reference=e.reference,
                suggestion=f"Re-run: git-app-auth setup pat --name {source.name}",
            ) from e
        log.debug("static_token_loaded", source=source.name, backend=str(backend))
        return token.strip()

    def handle(self, operation: str, stdin: TextIO, stdout: TextIO) -> None:
        """Run one full protocol cycle.

        Args:
            operation: Operation named on the command line by git
            stdin: Request stream
            stdout: Response stream; written only on a successful ``get``

        Raises:
            GitAppAuthError: For every failure except an unmatched request
        """
        try:
            op = Operation(operation)
        except ValueError:
            log.debug("credential_operation_ignored", operation=operation)
            return

        request = CredentialRequest.parse(op, stdin)
        structlog.contextvars.bind_contextvars(operation=str(op), host=request.host)
        try:
            log.info("credential_flow_start", path=request.path, pattern_override=self.pattern_override)

            if op is not Operation.GET:
                log.debug("credential_flow_success", result="noop")
                return

            try:
                attributes = self.credentials_for(request)
            except NoMatchError:
                log.info("credential_flow_success", result="unmatched")
                return

            stdout.write(format_response(attributes))
            stdout.flush()
            log.info("credential_flow_success", result="emitted")
        finally:
            structlog.contextvars.unbind_contextvars("operation", "host")


def handle_request(
    operation: str,
    stdin: TextIO,
    stdout: TextIO,
    sources: Sequence[CredentialSource],
    store: SecretStore,
    **options,
) -> None:
    """Run one protocol cycle with a short-lived handler."""
    handler = ProtocolHandler(sources, store, **options)
    try:
        handler.handle(operation, stdin, stdout)
    finally:
        handler.close()
