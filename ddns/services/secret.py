"""Per-alias secret generation."""

from __future__ import annotations

import secrets

from ddns.services.errors import InvalidArgument

CLAIM_SECRET_LENGTH = 32  # hex chars, 128 bits


def generate_secret(length: int = CLAIM_SECRET_LENGTH) -> str:
    """Return *length* lowercase hex characters of CSPRNG output.

    *length* must be a positive even integer; ``length // 2`` random bytes
    are drawn.
    """
    if not length or isinstance(length, bool) or not isinstance(length, int):
        raise InvalidArgument("generate_secret: Invalid parameter `length`.")
    if length < 0 or length % 2 != 0:
        raise InvalidArgument("Length must be a positive multiple of two!")
    return secrets.token_hex(length // 2)
