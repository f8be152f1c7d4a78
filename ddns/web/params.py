"""Request parameter extraction – body first, query string as fallback."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from aiohttp import web

from ddns.services.errors import InvalidArgument
from ddns.services.lifecycle import AliasRequest
from ddns.utils.enums import RequestMethod

logger = logging.getLogger(__name__)

PARAM_NAMES = ("alias", "publicKey", "signature")


async def _read_body(request: web.Request) -> Mapping[str, Any]:
    if not request.body_exists:
        return {}
    if request.content_type == "application/json":
        try:
            body = await request.json()
        except ValueError as e:
            # undecodable bytes or malformed JSON
            raise InvalidArgument("Request body is not valid UTF-8 encoded JSON.") from e
        return body if isinstance(body, dict) else {}
    if request.content_type in ("application/x-www-form-urlencoded", "multipart/form-data"):
        return await request.post()
    return {}


def source_address(request: web.Request, trust_forwarded_for: bool = False) -> str | None:
    """Return the caller's address, optionally taken from ``X-Forwarded-For``."""
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.remote


async def parse_request(
    request: web.Request, trust_forwarded_for: bool = False
) -> AliasRequest:
    """Build an :class:`AliasRequest` from an HTTP request.

    Each parameter is taken from the body when set there, otherwise from the
    query string.
    """
    body = await _read_body(request) if request.method == "POST" else {}
    values: dict[str, str | None] = {}
    for name in PARAM_NAMES:
        value = body.get(name) or request.query.get(name)
        values[name] = value if isinstance(value, str) else None

    if request.method == "POST":
        method = RequestMethod.WRITE
    else:
        method = RequestMethod.READ
        if not values["alias"]:
            raise InvalidArgument("To query for a record, you must provide a valid alias.")

    return AliasRequest(
        method=method,
        alias=values["alias"],
        public_key=values["publicKey"],
        signature=values["signature"],
        source_ip=source_address(request, trust_forwarded_for),
    )
