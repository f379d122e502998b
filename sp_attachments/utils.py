"""Utility helpers shared across modules."""

from __future__ import annotations

import email.utils
from datetime import UTC, datetime
from typing import Mapping
from urllib.parse import quote, urlsplit

from .models import RateLimitHint


def ensure_utc(dt: datetime) -> datetime:
    """Force a datetime into UTC without altering instant."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Convert a Retry-After header (delta seconds or HTTP date) into seconds."""
    if not value:
        return None
    value = value.strip()
    try:
        delay = float(value)
    except ValueError:
        try:
            when = email.utils.parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        delay = (ensure_utc(when) - (now or datetime.now(tz=UTC))).total_seconds()
    return max(0.0, delay)


def parse_rate_limit_hint(headers: Mapping[str, str]) -> RateLimitHint | None:
    """Read ``RateLimit-Remaining`` / ``RateLimit-Reset``; None when either is absent or junk."""
    remaining = headers.get("RateLimit-Remaining")
    reset = headers.get("RateLimit-Reset")
    if remaining is None or reset is None:
        return None
    try:
        return RateLimitHint(remaining=int(remaining.strip()), reset_after=max(0.0, float(reset.strip())))
    except ValueError:
        return None


def normalize_base_url(base_url: str) -> str:
    """Strip trailing slashes and any ``/_api`` suffix the caller may have included."""
    base = base_url.strip().rstrip("/")
    index = base.lower().find("/_api")
    if index >= 0:
        base = base[:index]
    return base


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}" if parts.scheme else ""


def api_base_from_url(url: str) -> str:
    """Find the site URL to call ``/_api/contextinfo`` on for a full REST URL."""
    index = url.lower().find("/_api")
    if index >= 0:
        return url[:index]
    return origin_of(url) or url


def odata_literal(value: str) -> str:
    """Quote ``value`` as an OData string literal body, safe for a URL path."""
    return quote(value.replace("'", "''"), safe="")


def excerpt(text: str, limit: int = 200) -> str:
    """Single-line, length-capped version of a response body for error messages."""
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."
