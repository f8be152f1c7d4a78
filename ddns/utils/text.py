"""Text utilities – timestamps and names."""

from __future__ import annotations

import time
from datetime import datetime, timezone


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def format_date(ts: int | str) -> str:
    """Render an epoch-millisecond timestamp as a readable UTC date."""
    if isinstance(ts, str):
        ts = int(ts)
    d = datetime.fromtimestamp(ts / 1000, tz=timezone.utc)
    return d.strftime("%a %b %d %Y %H:%M:%S GMT+0000 (UTC)")


def record_name(alias: str, domain_name: str) -> str:
    """Return the DNS name an alias is published under."""
    return f"{alias}.{domain_name.rstrip('.')}"
