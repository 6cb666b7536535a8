"""Verification of identity-provider (Supabase) access tokens.

Shared by the HTTP bearer dependency and the WebSocket endpoint. Failures are
returned as a TokenCheck rather than raised so each transport can map them to
its own response (401 or a close code).
"""

import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx
import jwt

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

ALLOWED_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384", "ES512", "EdDSA"]
TOKEN_AUDIENCE = "authenticated"


@dataclass
class TokenCheck:
    """Outcome of verifying one token."""

    success: bool
    claims: dict[str, Any] | None = None
    error: str | None = None
    expired: bool = False

    @property
    def user_id(self) -> str | None:
        if not self.claims:
            return None
        sub = self.claims.get("sub")
        return str(sub) if sub else None


class SigningKeys:
    """The provider's JWKS, fetched over httpx and cached for ``ttl`` seconds."""

    def __init__(self, jwks_url: str, ttl: float = 300.0):
        self.jwks_url = jwks_url
        self.ttl = ttl
        self._keys: jwt.PyJWKSet | None = None
        self._fetched_at = 0.0
        self._http: httpx.AsyncClient | None = None

    async def _load(self, refresh: bool) -> jwt.PyJWKSet:
        fresh = time.monotonic() - self._fetched_at < self.ttl
        if self._keys is not None and fresh and not refresh:
            return self._keys

        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=10.0)
        response = await self._http.get(self.jwks_url)
        response.raise_for_status()
        self._keys = jwt.PyJWKSet.from_dict(response.json())
        self._fetched_at = time.monotonic()
        logger.debug("Loaded %d signing keys from %s", len(self._keys.keys), self.jwks_url)
        return self._keys

    async def find(self, kid: str | None) -> Any:
        """Key material for ``kid``; an unknown kid forces one reload for rotated keys.

        Raises:
            LookupError: If no key in the set has this kid.
        """
        for refresh in (False, True):
            keys = await self._load(refresh)
            for jwk in keys.keys:
                if jwk.key_id == kid:
                    return jwk.key
        raise LookupError(f"Signing key {kid} not found")

    async def close(self) -> None:
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
        self._http = None


class TokenVerifier:
    """Validates access tokens against the identity provider's JWKS."""

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or get_settings()
        self._keys: SigningKeys | None = None

    @property
    def keys(self) -> SigningKeys:
        if self._keys is None:
            self._keys = SigningKeys(self._settings.supabase_jwks_url)
        return self._keys

    async def verify(self, token: str) -> TokenCheck:
        if not token:
            return TokenCheck(success=False, error="Missing token")

        try:
            header = jwt.get_unverified_header(token)
            algorithm = header.get("alg")
            if algorithm not in ALLOWED_ALGORITHMS:
                logger.warning("Rejected token signed with %s", algorithm)
                return TokenCheck(success=False, error=f"Algorithm {algorithm} not allowed")

            key = await self.keys.find(header.get("kid"))
            claims = jwt.decode(token, key, algorithms=[algorithm], audience=TOKEN_AUDIENCE)
        except jwt.ExpiredSignatureError:
            return TokenCheck(success=False, error="Token has expired", expired=True)
        except jwt.InvalidTokenError as e:
            logger.warning("Rejected invalid token: %s", e)
            return TokenCheck(success=False, error=f"Invalid token: {e}")
        except (httpx.HTTPError, jwt.PyJWKSetError, LookupError) as e:
            logger.error("Signing key lookup failed: %s", e)
            return TokenCheck(success=False, error="Authentication failed")

        check = TokenCheck(success=True, claims=claims)
        if check.user_id is None:
            return TokenCheck(success=False, error="Invalid token: missing subject")
        return check

    async def close(self) -> None:
        if self._keys is not None:
            await self._keys.close()
            self._keys = None


_token_verifier: TokenVerifier | None = None


def get_token_verifier() -> TokenVerifier:
    global _token_verifier
    if _token_verifier is None:
        _token_verifier = TokenVerifier()
    return _token_verifier


async def close_token_verifier() -> None:
    global _token_verifier
    if _token_verifier is not None:
        await _token_verifier.close()
        _token_verifier = None
