"""Error taxonomy for the alias service.

Every error a request can fail with derives from :class:`DdnsError`; the
lifecycle turns these into ``{"ok": false, "data": message}`` envelopes.
"""

from __future__ import annotations


class DdnsError(Exception):
    """Base class – carries the human-readable message returned to callers."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DdnsError):
    """Alias is missing, too short, or has an invalid format."""


class InvalidArgument(DdnsError):
    """A component was called with a missing or malformed argument."""


class MissingParameterError(DdnsError):
    """The credential required by the record's current state is absent."""


class RecordStateError(DdnsError):
    """The supplied credential does not fit the record's current state."""


class AlreadyExists(RecordStateError):
    """A create-if-absent insert lost the race for the alias."""


class CryptoValidationError(DdnsError):
    """The supplied public key is not usable RSA key material."""


class AuthenticationFailure(DdnsError):
    """No candidate timestamp in the tolerance window verified the signature."""


class NotFoundError(DdnsError):
    """No stored record or no published DNS record for the alias."""


class UpstreamError(DdnsError):
    """The store or a DNS collaborator failed."""


class RateLimited(DdnsError):
    """Too many write attempts from one source address."""
