"""Shared fixtures for the ddns tests."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ddns.cli import generate_key_pair
from ddns.models.alias_record import AliasRecord
from ddns.services.authenticator import SignatureAuthenticator
from ddns.services.dns_resolver import ResolvedAddress
from ddns.services.errors import AlreadyExists, NotFoundError
from ddns.services.lifecycle import RecordLifecycle

# 2023-11-14 22:13:20.250 UTC
FIXED_TIME = 1_700_000_000.25
DOMAIN = "ddns.example.com"
CALLER_IP = "203.0.113.7"


@pytest.fixture(scope="session")
def key_pair() -> tuple[str, str]:
    """``(private_pem, public_pem)`` for a 2048-bit RSA key."""
    private_pem, public_pem = generate_key_pair()
    return private_pem.decode(), public_pem.decode()


@pytest.fixture(scope="session")
def other_key_pair() -> tuple[str, str]:
    private_pem, public_pem = generate_key_pair()
    return private_pem.decode(), public_pem.decode()


@pytest.fixture(scope="session")
def small_public_key() -> str:
    """1024-bit key – too small to carry the 100-byte OAEP probe."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=1024)
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


class FakeClock:
    """Manually advanced wall clock (seconds since the epoch)."""

    def __init__(self, now: float = FIXED_TIME) -> None:
        self.now = now

    def time(self) -> float:
        return self.now

    def ms(self) -> int:
        return int(self.now * 1000)

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep():
    """Stands in for ``asyncio.sleep`` and records the requested delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def authenticator(clock, fake_sleep) -> SignatureAuthenticator:
    return SignatureAuthenticator(span=10, clock=clock.time, sleep=fake_sleep)


class FakeStore:
    """In-memory store with the same create-if-absent semantics as RecordStore."""

    def __init__(self) -> None:
        self.records: dict[str, AliasRecord] = {}
        self.inserts = 0

    async def get_by_alias(self, alias: str) -> AliasRecord | None:
        record = self.records.get(alias)
        await asyncio.sleep(0)  # let concurrent requests interleave
        return record

    async def insert_if_absent(
        self, alias: str, public_key: str, secret: str, now: int
    ) -> AliasRecord:
        if alias in self.records:
            raise AlreadyExists(f"Alias {alias!r} already exists.")
        record = AliasRecord(
            alias=alias, public_key=public_key, secret=secret, created=now, updated=now
        )
        self.records[alias] = record
        self.inserts += 1
        return record

    async def touch_updated_at(
        self,
        alias: str,
        now: int,
        *,
        public_key: str | None = None,
        secret: str | None = None,
    ) -> AliasRecord:
        record = self.records.get(alias)
        if (
            record is None
            or (public_key is not None and record.public_key != public_key)
            or (secret is not None and record.secret != secret)
        ):
            raise NotFoundError(f"Alias {alias!r} not found.")
        record.updated = max(record.updated, now)
        return record

    async def delete_if_matches(self, alias: str, public_key: str, secret: str) -> bool:
        record = self.records.get(alias)
        if record is None or record.public_key != public_key or record.secret != secret:
            return False
        del self.records[alias]
        return True


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def authority():
    fake = MagicMock()
    fake.upsert_address = AsyncMock(return_value=None)
    return fake


@pytest.fixture
def resolver():
    fake = MagicMock()
    fake.resolve = AsyncMock(
        return_value=ResolvedAddress(address=CALLER_IP, family=4)
    )
    return fake


@pytest.fixture
def lifecycle(store, authority, resolver, authenticator, clock) -> RecordLifecycle:
    return RecordLifecycle(
        store=store,
        authority=authority,
        resolver=resolver,
        authenticator=authenticator,
        domain_name=DOMAIN,
        clock=clock.ms,
    )


@pytest.fixture
def fake_redis():
    """In-memory mock that behaves like redis.asyncio.Redis for the subset we use."""

    store: dict[str, dict[str, float]] = {}

    redis = AsyncMock()

    async def _zadd(key, mapping):
        store.setdefault(key, {}).update(mapping)
        return len(mapping)

    def _zremrangebyscore(key, min_score, max_score):
        members = store.get(key, {})
        to_remove = [
            k for k, v in members.items()
            if float(min_score) <= float(v) <= float(max_score)
        ]
        for k in to_remove:
            del members[k]
        return len(to_remove)

    def _zcard(key):
        return len(store.get(key, {}))

    async def _expire(key, ttl):
        return True

    async def _ping():
        return True

    redis.zadd = AsyncMock(side_effect=_zadd)
    redis.expire = AsyncMock(side_effect=_expire)
    redis.ping = AsyncMock(side_effect=_ping)

    # pipeline() is a regular method; queued commands run on execute()
    def _pipeline():
        queued: list = []
        pipe = MagicMock()
        pipe.zremrangebyscore = MagicMock(
            side_effect=lambda *a: queued.append((_zremrangebyscore, a))
        )
        pipe.zcard = MagicMock(side_effect=lambda *a: queued.append((_zcard, a)))

        async def _execute():
            results = [fn(*a) for fn, a in queued]
            queued.clear()
            return results

        pipe.execute = AsyncMock(side_effect=_execute)
        return pipe

    redis.pipeline = MagicMock(side_effect=_pipeline)

    redis._store = store  # Expose for assertions
    return redis


@pytest.fixture
def anchor_ms(clock) -> int:
    """The fixed clock truncated to the whole second."""
    return clock.ms() - clock.ms() % 1000
