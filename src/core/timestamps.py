# ============================================================================
# MailLens -- Timestamp Decoding (src/core/timestamps.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   The Envelope Index stores dates as bare numbers. Two conventions
#   show up in the wild, sometimes in the same database:
#     - Unix time: seconds since 1970-01-01T00:00:00Z
#     - Reference time: seconds since 2001-01-01T00:00:00Z
#
#   There is no column metadata saying which one a row uses, so we
#   look at the magnitude: anything above one billion is treated as
#   Unix time, everything else as reference time.
#
# ASSUMPTION:
#   One billion Unix seconds is 2001-09-09. One billion reference
#   seconds is 2032-09-09. Real mail dates sit comfortably on one side
#   or the other, but a reference-time value after 2032 would be read
#   as Unix time. Kept as-is until the schema gives us something better.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
REFERENCE_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)

# Seconds between the two epochs (978307200)
REFERENCE_OFFSET_SECONDS = int((REFERENCE_EPOCH - UNIX_EPOCH).total_seconds())

UNIX_THRESHOLD = 1_000_000_000


def _as_number(value: Any) -> Optional[float]:
    # bool is an int subclass; a True in a date column is garbage, not 1s
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, (bytes, str)):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def decode_timestamp(value: Any) -> Optional[datetime]:
    """
    Turn a raw index value into an aware UTC datetime.

    Returns None for NULL or non-numeric values.
    """
    ts = _as_number(value)
    if ts is None:
        return None
    try:
        if ts > UNIX_THRESHOLD:
            return datetime.fromtimestamp(ts, tz=timezone.utc)
        return datetime.fromtimestamp(ts + REFERENCE_OFFSET_SECONDS, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def to_unix_seconds(moment: datetime) -> float:
    """Encode a datetime in the Unix regime (naive values are taken as UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - UNIX_EPOCH).total_seconds()


def to_reference_seconds(moment: datetime) -> float:
    """Encode a datetime in the reference (2001) regime."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - REFERENCE_EPOCH).total_seconds()
