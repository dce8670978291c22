# mls_sync/domain/parsing.py
from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from typing import Any

from .types import ListingStatus

STATUS_MAP: dict[str, ListingStatus] = {
    "ACTIVE": ListingStatus.active,
    "ACT": ListingStatus.active,
    "A": ListingStatus.active,
    "NEW": ListingStatus.active,
    "COMING SOON": ListingStatus.active,
    "ACTIVE UNDER CONTRACT": ListingStatus.pending,
    "PENDING": ListingStatus.pending,
    "PND": ListingStatus.pending,
    "P": ListingStatus.pending,
    "UNDER CONTRACT": ListingStatus.pending,
    "CONTINGENT": ListingStatus.pending,
    "SOLD": ListingStatus.sold,
    "SLD": ListingStatus.sold,
    "S": ListingStatus.sold,
    "CLOSED": ListingStatus.sold,
    "WITHDRAWN": ListingStatus.withdrawn,
    "WTH": ListingStatus.withdrawn,
    "CANCELLED": ListingStatus.withdrawn,
    "CANCELED": ListingStatus.withdrawn,
    "CAN": ListingStatus.withdrawn,
    "OFF MARKET": ListingStatus.withdrawn,
    "EXPIRED": ListingStatus.expired,
    "EXP": ListingStatus.expired,
}

_DATE_FORMATS = (
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%y",
    "%Y%m%d",
    "%d %b %Y",
    "%b %d, %Y",
    "%B %d, %Y",
)

_NUMERIC_JUNK = re.compile(r"[$,\s]|USD", re.IGNORECASE)


def utcnow() -> datetime:
    """Naive UTC; every timestamp we persist or compare uses this convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_int(x: Any) -> int | None:
    f = to_float(x)
    if f is None:
        return None
    return int(f)


def to_float(x: Any) -> float | None:
    if x is None or x == "" or isinstance(x, bool):
        return None
    try:
        v = float(x) if isinstance(x, (int, float)) else float(_NUMERIC_JUNK.sub("", str(x)))
    except (TypeError, ValueError, OverflowError):
        return None
    # "NaN", "inf" and overflowing literals like "1e400" parse but are not values
    return v if math.isfinite(v) else None


def parse_price(x: Any) -> float | None:
    """
    "$1,250,000" -> 1250000.0. Anything unparsable is None, never 0.
    """
    v = to_float(x)
    if v is None or v < 0:
        return None
    return v


def parse_date(x: Any) -> datetime | None:
    """
    Accepts datetimes, dates, ISO 8601 (with or without zone), RETS timestamps and
    US locale dates. Aware values are converted to naive UTC.
    """
    if x is None or x == "" or isinstance(x, bool):
        return None
    if isinstance(x, datetime):
        if x.tzinfo is not None:
            return x.astimezone(timezone.utc).replace(tzinfo=None)
        return x
    if isinstance(x, date):
        return datetime(x.year, x.month, x.day)
    if isinstance(x, (int, float)):
        ts = float(x)
        if ts > 1e11:  # epoch millis
            ts /= 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None

    s = str(x).strip()
    if not s:
        return None
    try:
        parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
        return parse_date(parsed)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None


def normalize_status(raw: Any) -> ListingStatus:
    if raw is None:
        return ListingStatus.unknown
    if isinstance(raw, ListingStatus):
        return raw
    key = re.sub(r"[\s_-]+", " ", str(raw)).strip().upper()
    if not key:
        return ListingStatus.unknown
    return STATUS_MAP.get(key, ListingStatus.unknown)


def to_str(x: Any) -> str | None:
    if x is None:
        return None
    s = str(x).strip()
    return s or None


def parse_feature_list(value: Any) -> Any:
    """Comma separated provider lists -> list[str]; structured values pass through."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        items = [s.strip() for s in value.split(",") if s.strip()]
        return items or None
    return value


def get_first(payload: dict[str, Any], *keys: str) -> Any:
    """Return first non-empty key from payload."""
    for k in keys:
        v = payload.get(k)
        if v is None:
            continue
        if isinstance(v, str) and not v.strip():
            continue
        return v
    return None
