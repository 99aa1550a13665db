"""Character classes, name suffix rules, float parsing and label signatures."""

from __future__ import annotations

import math
import re
from collections.abc import Mapping

_FLOAT_RE = re.compile(
    r"[+-]?(?:(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?)|nan",
    re.IGNORECASE,
)
_INFINITY_RE = re.compile(r"[+-]?inf(?:inity)?", re.IGNORECASE)

_FNV_OFFSET = 14695981039346656037
_FNV_PRIME = 1099511628211
_MASK64 = (1 << 64) - 1
_SEPARATOR = b"\xff"


def is_blank_or_tab(byte: int) -> bool:
    """Return whether ``byte`` is a space or a tab."""
    return byte in (0x20, 0x09)


def is_valid_label_name_start(byte: int) -> bool:
    """Return whether ``byte`` may start a label name (or its opening quote)."""
    return (
        ord("a") <= byte <= ord("z")
        or ord("A") <= byte <= ord("Z")
        or byte in (ord("_"), ord('"'))
    )


def is_valid_label_name_continuation(byte: int, quoted: bool) -> bool:
    """Return whether ``byte`` may continue a label name.

    Inside quotes every byte continues the name.
    """
    return quoted or is_valid_label_name_start(byte) or ord("0") <= byte <= ord("9")


def is_valid_metric_name_start(byte: int) -> bool:
    """Return whether ``byte`` may start a metric name."""
    return is_valid_label_name_start(byte) or byte == ord(":")


def is_valid_metric_name_continuation(byte: int, quoted: bool) -> bool:
    """Return whether ``byte`` may continue a metric name."""
    return is_valid_label_name_continuation(byte, quoted) or byte == ord(":")


def is_count(name: str) -> bool:
    """Return whether ``name`` has a non-empty stem followed by ``_count``."""
    return len(name) > 6 and name.endswith("_count")


def is_sum(name: str) -> bool:
    """Return whether ``name`` has a non-empty stem followed by ``_sum``."""
    return len(name) > 4 and name.endswith("_sum")


def is_bucket(name: str) -> bool:
    """Return whether ``name`` has a non-empty stem followed by ``_bucket``."""
    return len(name) > 7 and name.endswith("_bucket")


def summary_metric_name(name: str) -> str:
    """Strip a ``_count`` or ``_sum`` suffix from ``name``."""
    if is_count(name):
        return name[:-6]
    if is_sum(name):
        return name[:-4]
    return name


def histogram_metric_name(name: str) -> str:
    """Strip a ``_count``, ``_sum`` or ``_bucket`` suffix from ``name``."""
    if is_count(name):
        return name[:-6]
    if is_sum(name):
        return name[:-4]
    if is_bucket(name):
        return name[:-7]
    return name


def parse_float(text: str) -> float:
    """Parse a sample value as a decimal float, ``Inf`` or ``NaN``.

    Hex floats, underscores and values out of range raise ValueError.
    """
    if any(c in text for c in "pP_"):
        raise ValueError("unsupported character in float")
    if not _FLOAT_RE.fullmatch(text):
        raise ValueError(f"invalid syntax: {text!r}")
    value = float(text)
    if math.isinf(value) and not _INFINITY_RE.fullmatch(text):
        raise ValueError(f"value out of range: {text!r}")
    return value


def labels_signature(labels: Mapping[str, str]) -> int:
    """Return a 64-bit FNV-1a signature of a label set, independent of order."""
    signature = _FNV_OFFSET
    for name in sorted(labels):
        for chunk in (
            name.encode("utf-8", "surrogateescape"),
            _SEPARATOR,
            labels[name].encode("utf-8", "surrogateescape"),
            _SEPARATOR,
        ):
            for byte in chunk:
                signature ^= byte
                signature = (signature * _FNV_PRIME) & _MASK64
    return signature