"""Player identity resolution from identity-provider claims and stored profiles."""

import logging
from typing import Any

from supabase import AsyncClient, acreate_client

from app.config import get_settings
from app.services.room.models import PlayerProfile

logger = logging.getLogger(__name__)

_supabase: AsyncClient | None = None


async def _profiles_client() -> AsyncClient:
    """Async Supabase client, created on first lookup."""
    global _supabase
    if _supabase is None:
        settings = get_settings()
        _supabase = await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_API_KEY)
        logger.info("Async Supabase client initialized")
    return _supabase


async def close_profiles_client() -> None:
    """Release the Supabase client's HTTP session, if one was opened."""
    global _supabase
    if _supabase is None:
        return
    client, _supabase = _supabase, None
    # postgrest keeps its own httpx session that must be closed explicitly
    await client.postgrest.session.aclose()
    logger.info("Async Supabase client closed")


def profile_from_claims(claims: dict[str, Any]) -> PlayerProfile:
    """Build a PlayerProfile from verified JWT claims.

    Supabase puts OAuth provider details (name, avatar) in ``user_metadata``.
    """
    metadata = claims.get("user_metadata") or {}
    return PlayerProfile(
        id=str(claims["sub"]),
        display_name=metadata.get("full_name") or metadata.get("name"),
        email=claims.get("email") or None,
        photo_url=metadata.get("avatar_url") or metadata.get("picture"),
        is_anonymous=bool(claims.get("is_anonymous", False)),
    )


async def fetch_stored_profile(user_id: str) -> dict[str, Any] | None:
    """Fetch display_name/avatar_url from the profiles table.

    Returns None if the profile is missing or the lookup fails; callers fall
    back to the token claims.
    """
    try:
        client = await _profiles_client()
        response = (
            await client.table("profiles")
            .select("display_name, avatar_url")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.warning("Failed to fetch profile for user %s: %s", user_id, e)
        return None
    return response.data[0] if response.data else None


async def resolve_player_profile(claims: dict[str, Any]) -> PlayerProfile:
    """Claims first; stored profile fills in a missing display name or avatar."""
    profile = profile_from_claims(claims)
    if profile.display_name and profile.photo_url:
        return profile

    stored = await fetch_stored_profile(profile.id)
    if not stored:
        return profile

    logger.debug("Filled profile fields for user %s from profiles table", profile.id)
    return PlayerProfile(
        id=profile.id,
        display_name=profile.display_name or stored.get("display_name"),
        email=profile.email,
        photo_url=profile.photo_url or stored.get("avatar_url"),
        is_anonymous=profile.is_anonymous,
    )
