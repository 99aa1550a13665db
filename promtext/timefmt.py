"""Human-readable durations and timestamps from numeric values."""

from __future__ import annotations

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any

from promtext.names import parse_float

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_INT64_LIMIT = 2.0**63
_HEX_FLOAT_RE = re.compile(
    r"[+-]?0[xX](?:[0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)[pP][+-]?\d+"
)
_SMALL_PREFIXES = ("m", "u", "n", "p", "f", "a", "z", "y")


class _NotFiniteError(ValueError):
    """Raised when a value is NaN or infinite."""


def _format_g(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return "%.4g" % value


def _parse_number(text: str) -> float:
    if _HEX_FLOAT_RE.fullmatch(text):
        return float.fromhex(text)
    return parse_float(text)


def convert_to_float(value: Any) -> float:
    """Convert a number, numeric string or timedelta to float seconds.

    Raises ValueError for an unparsable string and TypeError for other types.
    """
    if isinstance(value, bool):
        raise TypeError(f"can't convert {type(value).__name__} to float")
    if isinstance(value, float):
        return value
    if isinstance(value, str):
        return _parse_number(value)
    if isinstance(value, int):
        return float(value)
    if isinstance(value, timedelta):
        return value.total_seconds()
    raise TypeError(f"can't convert {type(value).__name__} to float")


def float_to_time(value: float) -> datetime:
    """Return the UTC time ``value`` seconds after the epoch, to the millisecond.

    Raises ValueError for NaN, infinities, and values whose nanosecond count
    does not fit in a signed 64-bit integer.
    """
    if math.isnan(value) or math.isinf(value):
        raise _NotFiniteError("value is NaN or Inf")
    nanos = value * 1e9
    if nanos > _INT64_LIMIT or nanos < -_INT64_LIMIT:
        raise ValueError(
            f"{value} cannot be represented as a nanoseconds timestamp "
            "since it overflows int64"
        )
    whole = int(nanos)
    millis = abs(whole) // 1_000_000
    if whole < 0:
        millis = -millis
    return _EPOCH + timedelta(milliseconds=millis)


def _format_time(moment: datetime) -> str:
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d} "
        f"{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if moment.microsecond:
        text += ("." + f"{moment.microsecond:06d}").rstrip("0")
    return text + " +0000 UTC"


def humanize_duration(value: Any) -> str:
    """Render a number of seconds as e.g. ``1d 2h 3m 4s`` or ``123.5ms``."""
    seconds = convert_to_float(value)
    if math.isnan(seconds) or math.isinf(seconds):
        return _format_g(seconds)
    if seconds == 0:
        return _format_g(seconds) + "s"
    if abs(seconds) >= 1:
        sign = ""
        if seconds < 0:
            sign = "-"
            seconds = -seconds
        total = int(seconds)
        secs = total % 60
        minutes = (total // 60) % 60
        hours = (total // 3600) % 24
        days = total // 86400
        if days:
            return f"{sign}{days}d {hours}h {minutes}m {secs}s"
        if hours:
            return f"{sign}{hours}h {minutes}m {secs}s"
        if minutes:
            return f"{sign}{minutes}m {secs}s"
        return f"{sign}{_format_g(seconds)}s"
    prefix = ""
    for candidate in _SMALL_PREFIXES:
        if abs(seconds) >= 1:
            break
        prefix = candidate
        seconds *= 1000
    return f"{_format_g(seconds)}{prefix}s"


def humanize_timestamp(value: Any) -> str:
    """Render seconds since the epoch as a UTC date and time.

    NaN and infinities are rendered as numbers rather than times.
    """
    seconds = convert_to_float(value)
    try:
        moment = float_to_time(seconds)
    except _NotFiniteError:
        return _format_g(seconds)
    return _format_time(moment)