"""Alias syntax checks."""

from __future__ import annotations

import re

from ddns.services.errors import ValidationError

MIN_ALIAS_LENGTH = 4
# An alias is published as a single DNS label
MAX_ALIAS_LENGTH = 63

# alphanumeric first and last character, underscores and dashes inside
_ALIAS_RE = re.compile(r"[a-z0-9][a-z0-9_-]*[a-z0-9]", re.IGNORECASE | re.ASCII)


def validate_alias(alias: object) -> None:
    """Raise ``ValidationError`` unless *alias* is a usable alias string."""
    if not alias or not isinstance(alias, str):
        raise ValidationError("Missing or incorrect parameter `alias`!")
    if len(alias) < MIN_ALIAS_LENGTH:
        raise ValidationError(
            f"Parameter `alias` must be at least {MIN_ALIAS_LENGTH} "
            "characters in length!"
        )
    if len(alias) > MAX_ALIAS_LENGTH:
        raise ValidationError(
            f"Parameter `alias` must be at most {MAX_ALIAS_LENGTH} "
            "characters in length!"
        )
    if not _ALIAS_RE.fullmatch(alias):
        raise ValidationError(
            "Invalid `alias` format; only letters, numbers, underscores, and "
            "dashes are permitted and the alias must not begin or end with an "
            "underscore or a dash."
        )
