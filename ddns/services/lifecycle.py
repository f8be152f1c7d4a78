"""Record lifecycle – the alias state machine.

An alias is *unclaimed* until a client registers an RSA public key for it
(claim), and *claimed* from then on; a claimed alias can only be re-pointed
by a client presenting an ownership proof signed with the matching private
key (update). Reads return the published address together with the stored
key and timestamps.

Every request is validated, looked up, dispatched and finished strictly in
sequence; the only waits are store/DNS I/O and the authenticator's fixed
deadline.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from ddns.db.repositories.alias_repo import RecordStore
from ddns.models.alias_record import AliasRecord
from ddns.services.alias_check import validate_alias
from ddns.services.authenticator import SignatureAuthenticator
from ddns.services.dns_authority import DEFAULT_TTL, DnsAuthority
from ddns.services.dns_resolver import DnsResolver
from ddns.services.errors import (
    AlreadyExists,
    AuthenticationFailure,
    CryptoValidationError,
    DdnsError,
    InvalidArgument,
    MissingParameterError,
    NotFoundError,
    RecordStateError,
    UpstreamError,
)
from ddns.services.public_key import is_valid_public_key
from ddns.services.rate_limiter import WriteRateLimiter
from ddns.services.secret import CLAIM_SECRET_LENGTH, generate_secret
from ddns.utils.enums import RecordState, RequestMethod
from ddns.utils.text import format_date, now_ms, record_name

logger = logging.getLogger(__name__)

# Messages double as protocol guidance: each names the credential to send next.
NOT_CLAIMED_SIGNATURE_GIVEN = (
    "Record is not claimed. To claim a record, please provide a valid RSA "
    "public key in place of the `signature` parameter."
)
CLAIM_REQUIRES_PUBLIC_KEY = (
    "Creating (claiming) a record requires a valid RSA public key, yet no "
    "`publicKey` parameter was given!"
)
ALREADY_CLAIMED_PUBLIC_KEY_GIVEN = (
    "Record already claimed. To update a record, please provide a valid "
    "cryptographic signature in place of the `publicKey` parameter."
)
UPDATE_REQUIRES_SIGNATURE = (
    "Updating a record requires a valid cryptographic signature, yet no "
    "`signature` param was given!"
)
INVALID_PUBLIC_KEY = (
    "Invalid `publicKey`; it must be a PEM-encoded RSA public key able to "
    "encrypt a 100-byte message."
)
NO_SUCH_ALIAS = "No such alias."


@dataclass(frozen=True)
class AliasRequest:
    """Transport-independent request."""

    method: RequestMethod
    alias: str | None
    public_key: str | None = None
    signature: str | None = None
    source_ip: str | None = None


@dataclass
class Envelope:
    """``{ok, data}`` response; *error* is kept for the transport only."""

    ok: bool
    data: Any
    error: DdnsError | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "data": self.data}


def _present(value: str | None) -> bool:
    return bool(value) and isinstance(value, str)


def record_state(record: AliasRecord | None) -> RecordState:
    if record is not None and record.is_claimed:
        return RecordState.CLAIMED
    return RecordState.UNCLAIMED


class RecordLifecycle:
    def __init__(
        self,
        store: RecordStore,
        authority: DnsAuthority,
        resolver: DnsResolver,
        authenticator: SignatureAuthenticator,
        domain_name: str,
        ttl: int = DEFAULT_TTL,
        secret_length: int = CLAIM_SECRET_LENGTH,
        limiter: WriteRateLimiter | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._authority = authority
        self._resolver = resolver
        self._authenticator = authenticator
        self._domain_name = domain_name
        self._ttl = ttl
        self._secret_length = secret_length
        self._limiter = limiter
        self._clock = clock

    def cname(self, alias: str) -> str:
        return record_name(alias, self._domain_name)

    # ── Boundary ──────────────────────────────────────────────────────

    async def handle(self, request: AliasRequest) -> Envelope:
        """Run *request* to completion and wrap the outcome in an envelope."""
        try:
            data = await self.execute(request)
        except DdnsError as e:
            if isinstance(e, AuthenticationFailure):
                logger.warning("Rejected proof for alias=%s from %s", request.alias, request.source_ip)
            else:
                logger.info(
                    "Request %s alias=%s failed: %s",
                    request.method.value,
                    request.alias,
                    type(e).__name__,
                )
            return Envelope(ok=False, data=e.message, error=e)
        except Exception as e:
            logger.exception("Upstream failure for alias=%s", request.alias)
            err = UpstreamError(str(e) or type(e).__name__)
            return Envelope(ok=False, data=err.message, error=err)
        return Envelope(ok=True, data=data)

    async def execute(self, request: AliasRequest) -> dict[str, Any]:
        validate_alias(request.alias)
        if request.method is RequestMethod.READ:
            return await self.read(request.alias)  # type: ignore[arg-type]
        return await self.write(
            request.alias,  # type: ignore[arg-type]
            public_key=request.public_key,
            signature=request.signature,
            source_ip=request.source_ip,
        )

    # ── Read ──────────────────────────────────────────────────────────

    async def read(self, alias: str) -> dict[str, Any]:
        record = await self._store.get_by_alias(alias)
        if record is None:
            raise NotFoundError(NO_SUCH_ALIAS)

        cname = self.cname(alias)
        resolved = await self._resolver.resolve(cname)
        return {
            "address": resolved.address,
            "family": resolved.family,
            "alias": record.alias,
            "cname": cname,
            "publicKey": record.public_key,
            "created": format_date(record.created),
            "updated": format_date(record.updated),
        }

    # ── Write ─────────────────────────────────────────────────────────

    async def write(
        self,
        alias: str,
        *,
        public_key: str | None = None,
        signature: str | None = None,
        source_ip: str | None = None,
    ) -> dict[str, Any]:
        """Claim or update *alias* depending on its state and the credentials."""
        ip = _require_ipv4(source_ip)
        if self._limiter is not None:
            await self._limiter.acquire(ip)

        record = await self._store.get_by_alias(alias)
        state = record_state(record)

        if state is RecordState.UNCLAIMED:
            if _present(public_key):
                return await self.claim(alias, public_key, ip)  # type: ignore[arg-type]
            if _present(signature):
                raise RecordStateError(NOT_CLAIMED_SIGNATURE_GIVEN)
            raise MissingParameterError(CLAIM_REQUIRES_PUBLIC_KEY)

        if _present(signature):
            return await self.update(record, signature, ip)  # type: ignore[arg-type]
        if _present(public_key):
            raise RecordStateError(ALREADY_CLAIMED_PUBLIC_KEY_GIVEN)
        raise MissingParameterError(UPDATE_REQUIRES_SIGNATURE)

    async def claim(self, alias: str, public_key: str, ip: str) -> dict[str, Any]:
        if not is_valid_public_key(public_key):
            raise CryptoValidationError(INVALID_PUBLIC_KEY)

        secret = generate_secret(self._secret_length)
        try:
            await self._store.insert_if_absent(alias, public_key, secret, self._clock())
        except AlreadyExists as e:
            raise AlreadyExists(ALREADY_CLAIMED_PUBLIC_KEY_GIVEN) from e
        logger.info("Claimed alias=%s for %s", alias, ip)

        cname = self.cname(alias)
        try:
            await self._authority.upsert_address(cname, ip, self._ttl)
        except Exception:
            # The secret is never returned, so the claim is released.
            released = await self._store.delete_if_matches(alias, public_key, secret)
            logger.warning("Claim of alias=%s not published; released=%s", alias, released)
            raise
        return {"alias": alias, "cname": cname, "ip": ip, "secret": secret}

    async def update(self, record: AliasRecord, signature: str, ip: str) -> dict[str, Any]:
        alias = record.alias
        await self._authenticator.verify(alias, record.secret, record.public_key, signature)

        # Only applies while the stored credentials are the ones just verified.
        await self._store.touch_updated_at(
            alias,
            self._clock(),
            public_key=record.public_key,
            secret=record.secret,
        )
        logger.info("Updated alias=%s to %s", alias, ip)

        cname = self.cname(alias)
        await self._authority.upsert_address(cname, ip, self._ttl)
        return {"alias": alias, "cname": cname, "ip": ip}


def _require_ipv4(source_ip: str | None) -> str:
    if not source_ip:
        raise InvalidArgument("Unable to determine the caller's source address.")
    try:
        return str(ipaddress.IPv4Address(source_ip))
    except ValueError as e:
        raise InvalidArgument(
            f"Source address {source_ip!r} is not an IPv4 address; only A records "
            "can be published."
        ) from e
