"""GitHub App assertion (JWT) minting.

GitHub authenticates an App, as opposed to one of its installations, with
an RS256 JWT whose issuer is the App ID. The API rejects assertions that
expire more than 10 minutes after they are issued, and assertions issued
"in the future" according to its own clock, so ``iat`` is backdated by a
small skew allowance.
"""

import time
from collections.abc import Callable

import jwt
import structlog
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from git_app_auth.exceptions import InvalidAppIDError, InvalidKeyError

log = structlog.get_logger(__name__)

MAX_ASSERTION_LIFETIME = 600
DEFAULT_CLOCK_SKEW = 60


def load_rsa_private_key(private_key_pem: str) -> RSAPrivateKey:
    """Parse a PEM RSA key in either PKCS#1 or PKCS#8 encoding.

    Raises:
        InvalidKeyError: If the PEM is unparsable, encrypted, or not RSA.
            The message never includes key material.
    """
    try:
        key = serialization.load_pem_private_key(private_key_pem.strip().encode("utf-8"), password=None)
    except (ValueError, TypeError) as e:
        raise InvalidKeyError(f"Private key could not be parsed: {type(e).__name__}") from e

    if not isinstance(key, RSAPrivateKey):
        raise InvalidKeyError(f"Private key is {type(key).__name__}, expected an RSA key")
    return key


class JWTMinter:
    """Sign short-lived GitHub App assertions.

    Example:
        >>> minter = JWTMinter()
        >>> assertion = minter.mint(12345, pem_text)
    """

    def __init__(
        self,
        lifetime: int = MAX_ASSERTION_LIFETIME,
        clock_skew: int = DEFAULT_CLOCK_SKEW,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the minter.

        Args:
            lifetime: Seconds between ``iat`` and ``exp``, at most 600
            clock_skew: Seconds ``iat`` is backdated
            clock: Source of the current Unix time
        """
        if not 0 < lifetime <= MAX_ASSERTION_LIFETIME:
            raise ValueError(f"lifetime must be between 1 and {MAX_ASSERTION_LIFETIME} seconds")
        self.lifetime = lifetime
        self.clock_skew = clock_skew
        self._clock = clock

    def claims(self, app_id: int) -> dict[str, int | str]:
        issued_at = int(self._clock()) - self.clock_skew
        return {
            "iat": issued_at,
            "exp": issued_at + self.lifetime,
            "iss": str(app_id),
        }

    def mint(self, app_id: int, private_key_pem: str) -> str:
        """Sign an assertion for ``app_id``.

        Raises:
            InvalidAppIDError: If ``app_id`` is not positive
            InvalidKeyError: If the key is not a parsable RSA key
        """
        if app_id <= 0:
            raise InvalidAppIDError(f"App ID must be a positive integer, got {app_id}")

        key = load_rsa_private_key(private_key_pem)
        claims = self.claims(app_id)
        assertion = jwt.encode(claims, key, algorithm="RS256")
        log.debug("assertion_minted", app_id=app_id, expires=claims["exp"])
        return assertion
