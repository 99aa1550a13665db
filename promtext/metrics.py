"""Data model for metric families parsed from the text exposition format."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from enum import IntEnum
from typing import Any


class MetricType(IntEnum):
    """Kinds of metric a family can hold."""

    COUNTER = 0
    GAUGE = 1
    SUMMARY = 2
    UNTYPED = 3
    HISTOGRAM = 4
    GAUGE_HISTOGRAM = 5


def parse_metric_type(name: str) -> MetricType:
    """Return the metric type named by ``name``, ignoring case.

    Raises ValueError for an unknown type name.
    """
    try:
        return MetricType[name.upper()]
    except KeyError:
        raise ValueError(f"unknown metric type {name!r}") from None


def _values_equal(a: Any, b: Any) -> bool:
    if isinstance(a, float) and isinstance(b, float):
        return a == b or (math.isnan(a) and math.isnan(b))
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(_values_equal(x, y) for x, y in zip(a, b))
    return a == b


class _Message:
    """Equality over all fields, with NaN equal to NaN."""

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return all(
            _values_equal(getattr(self, f.name), getattr(other, f.name))
            for f in fields(self)  # type: ignore[arg-type]
        )

    __hash__ = None  # type: ignore[assignment]


@dataclass(eq=False)
class LabelPair(_Message):
    """A single label name and its value."""

    name: str
    value: str = ""


@dataclass(eq=False)
class Quantile(_Message):
    """One quantile of a summary."""

    quantile: float
    value: float


@dataclass(eq=False)
class Summary(_Message):
    """Sample count, sum and quantiles of a summary."""

    sample_count: int | None = None
    sample_sum: float | None = None
    quantile: list[Quantile] = field(default_factory=list)


@dataclass(eq=False)
class Bucket(_Message):
    """One cumulative bucket of a histogram."""

    upper_bound: float
    cumulative_count: int


@dataclass(eq=False)
class Histogram(_Message):
    """Sample count, sum and buckets of a histogram."""

    sample_count: int | None = None
    sample_sum: float | None = None
    bucket: list[Bucket] = field(default_factory=list)


@dataclass(eq=False)
class Metric(_Message):
    """One labelled sample (or summary/histogram) within a family."""

    label: list[LabelPair] = field(default_factory=list)
    counter: float | None = None
    gauge: float | None = None
    untyped: float | None = None
    summary: Summary | None = None
    histogram: Histogram | None = None
    timestamp_ms: int | None = None


@dataclass(eq=False)
class MetricFamily(_Message):
    """All metrics sharing one name, with their help text and type."""

    name: str
    help: str | None = None
    type: MetricType | None = None
    metric: list[Metric] = field(default_factory=list)