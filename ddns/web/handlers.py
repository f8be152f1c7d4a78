"""HTTP routes – maps requests onto the record lifecycle."""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from aiohttp import web

from ddns.services.errors import (
    AuthenticationFailure,
    CryptoValidationError,
    DdnsError,
    InvalidArgument,
    MissingParameterError,
    NotFoundError,
    RateLimited,
    RecordStateError,
    UpstreamError,
    ValidationError,
)
from ddns.services.lifecycle import Envelope, RecordLifecycle
from ddns.web.params import parse_request

logger = logging.getLogger(__name__)

LIFECYCLE_KEY = web.AppKey("lifecycle", RecordLifecycle)
REDIS_KEY = web.AppKey("redis", aioredis.Redis)
TRUST_FORWARDED_FOR_KEY = web.AppKey("trust_forwarded_for", bool)

# Most specific first: AlreadyExists is matched through RecordStateError.
_STATUS_BY_ERROR: tuple[tuple[type[DdnsError], int], ...] = (
    (ValidationError, 400),
    (InvalidArgument, 400),
    (MissingParameterError, 400),
    (CryptoValidationError, 400),
    (AuthenticationFailure, 401),
    (NotFoundError, 404),
    (RecordStateError, 409),
    (RateLimited, 429),
    (UpstreamError, 502),
)


def status_for(error: DdnsError | None) -> int:
    if error is None:
        return 200
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


def _respond(envelope: Envelope) -> web.Response:
    return web.json_response(envelope.to_dict(), status=status_for(envelope.error))


async def records_handler(request: web.Request) -> web.Response:
    """``GET /records`` reads an alias, ``POST /records`` claims or updates it."""
    try:
        alias_request = await parse_request(
            request, request.app[TRUST_FORWARDED_FOR_KEY]
        )
    except DdnsError as e:
        return _respond(Envelope(ok=False, data=e.message, error=e))

    envelope = await request.app[LIFECYCLE_KEY].handle(alias_request)
    return _respond(envelope)


async def health_handler(request: web.Request) -> web.Response:
    """Health check endpoint for monitoring / container probes."""
    info: dict = {"status": "ok"}
    redis_conn = request.app.get(REDIS_KEY)
    if redis_conn is not None:
        try:
            await redis_conn.ping()
            info["redis"] = "ok"
        except Exception:
            info["redis"] = "error"
    return web.json_response(info)


def register_routes(app: web.Application) -> None:
    app.router.add_get("/health", health_handler)
    app.router.add_get("/records", records_handler)
    app.router.add_post("/records", records_handler)
