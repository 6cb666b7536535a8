"""Game code generation."""

import secrets
import string

GAME_CODE_ALPHABET = string.ascii_uppercase + string.digits
GAME_CODE_LENGTH = 6


def generate_game_code(length: int = GAME_CODE_LENGTH) -> str:
    """Return a code drawn uniformly from ``[A-Z0-9]``.

    Uniqueness is not guaranteed here; room creation retries on collision.
    """
    return "".join(secrets.choice(GAME_CODE_ALPHABET) for _ in range(length))


def normalize_game_code(code: str) -> str:
    return code.strip().upper()
