import logging
from typing import Annotated, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.services.identity import TokenVerifier, get_token_verifier
from app.services.profile import resolve_player_profile
from app.services.room.models import PlayerProfile

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_token_claims(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> dict[str, Any]:
    """Verify the bearer token and return its claims.

    Raises HTTPException 401 if the header is missing or the token is invalid.
    """
    if credentials is None:
        logger.warning("Authentication failed: missing authorization header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    check = await verifier.verify(credentials.credentials)
    if not check.success or check.claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=check.error or "Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return check.claims


TokenClaims = Annotated[dict[str, Any], Depends(get_token_claims)]


async def get_current_profile(claims: TokenClaims) -> PlayerProfile:
    """Resolve the authenticated user's player identity."""
    profile = await resolve_player_profile(claims)
    logger.debug("Resolved profile for user: %s", profile.id)
    return profile


CurrentProfile = Annotated[PlayerProfile, Depends(get_current_profile)]
