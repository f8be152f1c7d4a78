"""Logging middleware – structured logging per HTTP request."""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from aiohttp import web

logger = logging.getLogger("ddns.requests")


@web.middleware
async def logging_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    """Log each request with timing and status."""
    start = time.perf_counter()
    try:
        response = await handler(request)
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        logger.error(
            "method=%s path=%s elapsed=%.1fms error=%s",
            request.method,
            request.path,
            elapsed,
            e,
        )
        raise
    elapsed = (time.perf_counter() - start) * 1000
    logger.info(
        "method=%s path=%s status=%d elapsed=%.1fms",
        request.method,
        request.path,
        response.status,
        elapsed,
    )
    return response
