"""Application factory – wires the store, DNS clients and lifecycle into an
aiohttp application and serves it."""

from __future__ import annotations

import asyncio
import logging

import redis.asyncio as aioredis
from aiohttp import web
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ddns.config import Settings, get_settings
from ddns.db.repositories.alias_repo import RecordStore
from ddns.services.authenticator import SignatureAuthenticator
from ddns.services.dns_authority import DnsAuthority
from ddns.services.dns_resolver import DnsResolver
from ddns.services.lifecycle import RecordLifecycle
from ddns.services.rate_limiter import WriteRateLimiter
from ddns.web.handlers import (
    LIFECYCLE_KEY,
    REDIS_KEY,
    TRUST_FORWARDED_FOR_KEY,
    register_routes,
)
from ddns.web.logging_mw import logging_middleware

logger = logging.getLogger(__name__)


def build_lifecycle(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    redis: aioredis.Redis | None = None,
) -> RecordLifecycle:
    """Construct the lifecycle and its collaborators from *settings*."""
    authority = DnsAuthority(
        zone=settings.zone,
        server=settings.DNS_PRIMARY_SERVER,
        port=settings.DNS_PRIMARY_PORT,
        timeout=settings.DNS_TIMEOUT,
        tsig_key_name=settings.DNS_TSIG_KEY_NAME,
        tsig_secret=settings.DNS_TSIG_SECRET,
        tsig_algorithm=settings.DNS_TSIG_ALGORITHM,
    )
    limiter = None
    if redis is not None and settings.WRITE_RATE_LIMIT > 0:
        limiter = WriteRateLimiter(redis, settings.WRITE_RATE_LIMIT)

    return RecordLifecycle(
        store=RecordStore(session_factory),
        authority=authority,
        resolver=DnsResolver(timeout=settings.DNS_TIMEOUT),
        authenticator=SignatureAuthenticator(span=settings.AUTH_WINDOW_SECONDS),
        domain_name=settings.DNS_DOMAIN_NAME,
        ttl=settings.DNS_RECORD_TTL,
        secret_length=settings.SECRET_LENGTH,
        limiter=limiter,
    )


def create_app(
    lifecycle: RecordLifecycle,
    redis: aioredis.Redis | None = None,
    trust_forwarded_for: bool = False,
) -> web.Application:
    app = web.Application(middlewares=[logging_middleware])
    app[LIFECYCLE_KEY] = lifecycle
    app[TRUST_FORWARDED_FOR_KEY] = trust_forwarded_for
    if redis is not None:
        app[REDIS_KEY] = redis
    register_routes(app)
    return app


async def _ensure_tables(engine: AsyncEngine) -> None:
    from ddns.db.base import Base

    # Import models so they register on metadata
    from ddns.models.alias_record import AliasRecord  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured.")


async def main(settings: Settings | None = None) -> None:
    """Entry point."""
    from ddns.db.engine import create_engine, create_session_factory

    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )

    engine = create_engine(settings.DATABASE_URL)
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    await _ensure_tables(engine)

    lifecycle = build_lifecycle(settings, create_session_factory(engine), redis)
    if settings.tsig_enabled:
        logger.info("DNS updates are TSIG-signed with key %s", settings.DNS_TSIG_KEY_NAME)
    app = create_app(lifecycle, redis, settings.TRUST_FORWARDED_FOR)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=settings.HTTP_HOST, port=settings.HTTP_PORT)
    await site.start()
    logger.info(
        "Serving %s on %s:%d", settings.DNS_DOMAIN_NAME, settings.HTTP_HOST, settings.HTTP_PORT
    )
    try:
        # Keep running until interrupted
        await asyncio.Event().wait()
    finally:
        logger.info("Shutting down…")
        await runner.cleanup()
        await redis.aclose()
        await engine.dispose()
        logger.info("Shutdown complete.")
