"""Ownership-proof verification – time-windowed RSA-SHA256 signatures.

A client proves it still holds the private key of a claimed alias by signing
the canonical message::

    {"alias":"<alias>","now":"<epoch-ms>","secret":"<secret>"}

where ``now`` is its current time in epoch milliseconds with the
milliseconds zeroed. Keys appear in that order with no whitespace; the
bytes are signed with RSASSA-PKCS1-v1_5 over SHA-256 and sent base64
encoded. This layout is version 1 of the wire contract and must not change.

The server accepts the proof if it verifies for any whole second within
``±span`` of its own clock. Whatever the outcome, the result is released
only once the server clock reaches ``anchor + span``, so response latency
does not reveal which second matched or how far the search went.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import time
from typing import Awaitable, Callable, Iterator

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ddns.services.errors import AuthenticationFailure, InvalidArgument
from ddns.services.public_key import load_rsa_public_key
from ddns.utils.text import format_date

logger = logging.getLogger(__name__)

DEFAULT_SPAN_SECONDS = 10


def canonical_message(alias: str, now_ms: int, secret: str) -> bytes:
    """Return the exact bytes a client signs for *now_ms*."""
    return json.dumps(
        {"alias": alias, "now": str(now_ms), "secret": secret},
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def truncate_to_second(epoch_ms: int) -> int:
    return epoch_ms - (epoch_ms % 1000)


def candidate_offsets(span: int) -> Iterator[int]:
    """Yield 0, -1, +1, -2, +2 … -span, +span (seconds), each once."""
    yield 0
    for i in range(1, span + 1):
        yield -i
        yield i


def sign_proof(
    private_key_pem: str | bytes,
    alias: str,
    secret: str,
    now_ms: int | None = None,
    password: bytes | None = None,
) -> str:
    """Client side: sign the canonical message and return base64 text.

    *now_ms* defaults to the current time; milliseconds are always zeroed.
    """
    if isinstance(private_key_pem, str):
        private_key_pem = private_key_pem.encode("ascii")
    key = serialization.load_pem_private_key(private_key_pem, password=password)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise InvalidArgument("sign_proof: `private_key_pem` is not an RSA key.")
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    message = canonical_message(alias, truncate_to_second(now_ms), secret)
    signature = key.sign(message, padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(signature).decode("ascii")


def _require_str(value: object, name: str) -> None:
    if not value or not isinstance(value, str):
        raise InvalidArgument(f"verify: Invalid parameter `{name}`.")


class SignatureAuthenticator:
    """Verifies ownership proofs with a fixed-latency result."""

    def __init__(
        self,
        span: int = DEFAULT_SPAN_SECONDS,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if span < 0:
            raise InvalidArgument("SignatureAuthenticator: `span` must be >= 0.")
        self._span = span
        self._clock = clock
        self._sleep = sleep

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def verify(
        self, alias: str, secret: str, public_key: str, signature: str
    ) -> None:
        """Return once the proof is accepted; raise ``AuthenticationFailure`` otherwise.

        Malformed arguments raise ``InvalidArgument`` immediately, without
        waiting for the deadline.
        """
        _require_str(alias, "alias")
        _require_str(secret, "secret")
        _require_str(public_key, "publicKey")
        _require_str(signature, "signature")

        anchor = truncate_to_second(self._now_ms())
        deadline = anchor + self._span * 1000

        matched = await asyncio.to_thread(
            self._search, alias, secret, public_key, signature, anchor
        )

        remaining = (deadline - self._now_ms()) / 1000
        if remaining > 0:
            await self._sleep(remaining)

        if matched is None:
            raise AuthenticationFailure(
                "Invalid signature! Server local time is "
                f"{format_date(self._now_ms())}."
            )
        logger.debug("Proof for %s matched second %+d", alias, (matched - anchor) // 1000)

    def _search(
        self, alias: str, secret: str, public_key: str, signature: str, anchor: int
    ) -> int | None:
        """Return the candidate timestamp that verifies, or None."""
        try:
            key = load_rsa_public_key(public_key)
            sig = base64.b64decode(signature)
        except (ValueError, TypeError, binascii.Error, UnsupportedAlgorithm) as e:
            # Undecodable material can never match any candidate.
            logger.info("Unusable proof material for %s: %s", alias, e)
            return None

        for offset in candidate_offsets(self._span):
            candidate = truncate_to_second(anchor + offset * 1000)
            try:
                key.verify(
                    sig,
                    canonical_message(alias, candidate, secret),
                    padding.PKCS1v15(),
                    hashes.SHA256(),
                )
            except InvalidSignature:
                continue
            except Exception as e:
                logger.info("Verification error for %s at %d: %s", alias, candidate, e)
                continue
            return candidate
        return None
