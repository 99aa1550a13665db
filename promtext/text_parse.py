"""Parser for the flat text-based metric exposition format."""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from typing import IO, Optional, Union

from promtext.metrics import (
    Bucket,
    Histogram,
    LabelPair,
    Metric,
    MetricFamily,
    MetricType,
    Quantile,
    Summary,
    parse_metric_type,
)
from promtext.names import (
    histogram_metric_name,
    is_blank_or_tab,
    is_count,
    is_sum,
    is_valid_label_name_continuation,
    is_valid_label_name_start,
    is_valid_metric_name_continuation,
    is_valid_metric_name_start,
    labels_signature,
    parse_float,
    summary_metric_name,
)

METRIC_NAME_LABEL = "__name__"
QUANTILE_LABEL = "quantile"
BUCKET_LABEL = "le"

_NEWLINE = ord("\n")
_BACKSLASH = ord("\\")
_QUOTE = ord('"')
_HASH = ord("#")
_LBRACE = ord("{")
_RBRACE = ord("}")
_COMMA = ord(",")
_EQUALS = ord("=")
_SPACE = ord(" ")
_LETTER_N = ord("n")

_INT_RE = re.compile(rb"[+-]?[0-9]+")
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UINT64_MASK = (1 << 64) - 1

_ESCAPES = {
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
    "\\": "\\\\",
}

Stream = Union[bytes, bytearray, memoryview, str, IO[bytes], IO[str]]
_State = Optional[Callable[[], "_State"]]


class ParseError(ValueError):
    """A syntax error in the text format, with the line it was found on."""

    def __init__(self, line: int, msg: str) -> None:
        super().__init__(line, msg)
        self.line = line
        self.msg = msg

    def __str__(self) -> str:
        return f"text format parsing error in line {self.line}: {self.msg}"


class _EndOfInput(Exception):
    """Raised internally when the input runs out."""


def _quote(text: str, delimiter: str = '"') -> str:
    parts = [delimiter]
    for ch in text:
        code = ord(ch)
        if 0xDC80 <= code <= 0xDCFF:
            parts.append(f"\\x{code - 0xDC00:02x}")
        elif ch == delimiter:
            parts.append("\\" + ch)
        elif ch in _ESCAPES:
            parts.append(_ESCAPES[ch])
        elif ch.isprintable():
            parts.append(ch)
        elif code < 0x20 or code == 0x7F:
            parts.append(f"\\x{code:02x}")
        elif code < 0x10000:
            parts.append(f"\\u{code:04x}")
        else:
            parts.append(f"\\U{code:08x}")
    parts.append(delimiter)
    return "".join(parts)


def _quote_byte(byte: int) -> str:
    return _quote(chr(byte), "'")


def _to_uint64(value: float) -> int:
    if not math.isfinite(value) or value >= 2.0**64:
        return 1 << 63
    return int(value) & _UINT64_MASK


def _read_input(stream: Stream) -> bytes:
    if isinstance(stream, (bytes, bytearray, memoryview)):
        return bytes(stream)
    if isinstance(stream, str):
        return stream.encode("utf-8", "surrogateescape")
    data = stream.read()
    if isinstance(data, str):
        return data.encode("utf-8", "surrogateescape")
    return bytes(data)


class TextParser:
    """Parses the text exposition format into metric families.

    A parser can be reused, but not shared between threads.
    """

    def __init__(self) -> None:
        self._reset(b"")

    def text_to_metric_families(self, stream: Stream) -> dict[str, MetricFamily]:
        """Parse ``stream`` and return the metric families by name.

        ``stream`` may be bytes, text, or a binary or text file object.
        Families without any samples are left out. Raises ParseError on
        malformed input.
        """
        self._reset(_read_input(stream))
        state: _State = self._start_of_line
        try:
            while state is not None:
                state = state()
        except _EndOfInput:
            raise ParseError(self._line_count, "unexpected end of input stream") from None
        return {name: mf for name, mf in self._families.items() if mf.metric}

    def _reset(self, data: bytes) -> None:
        self._data = data
        self._pos = 0
        self._byte = 0
        self._line_count = 0
        self._token = bytearray()
        self._families: dict[str, MetricFamily] = {}
        self._current_mf: MetricFamily | None = None
        self._current_metric: Metric | None = None
        self._current_pair: LabelPair | None = None
        self._current_pairs: list[LabelPair] = []
        self._current_labels: dict[str, str] = {}
        self._summaries: dict[int, Metric] = {}
        self._histograms: dict[int, Metric] = {}
        self._current_quantile = math.nan
        self._current_bucket = math.nan
        self._is_summary_count = False
        self._is_summary_sum = False
        self._is_histogram_count = False
        self._is_histogram_sum = False
        self._inside_braces = False
        self._name_in_braces = False

    # Helpers -------------------------------------------------------------

    def _fail(self, msg: str) -> None:
        raise ParseError(self._line_count, msg)

    def _next_byte(self) -> int:
        if self._pos >= len(self._data):
            raise _EndOfInput
        self._byte = self._data[self._pos]
        self._pos += 1
        return self._byte

    def _token_text(self) -> str:
        return bytes(self._token).decode("utf-8", "surrogateescape")

    @property
    def _type(self) -> MetricType:
        if self._current_mf is None or self._current_mf.type is None:
            return MetricType.COUNTER
        return self._current_mf.type

    @property
    def _mf_name(self) -> str:
        return self._current_mf.name if self._current_mf is not None else ""

    def _skip_blank_tab(self) -> None:
        while is_blank_or_tab(self._next_byte()):
            pass

    def _skip_blank_tab_if_current_blank_tab(self) -> None:
        if is_blank_or_tab(self._byte):
            self._skip_blank_tab()

    def _read_escaped(self, byte: int) -> None:
        if byte == _BACKSLASH:
            self._token.append(_BACKSLASH)
        elif byte == _LETTER_N:
            self._token.append(_NEWLINE)
        elif byte == _QUOTE:
            self._token.append(_QUOTE)
        else:
            self._fail(f"invalid escape sequence '\\{chr(byte)}'")

    def _read_token_until_whitespace(self) -> None:
        self._token.clear()
        while not is_blank_or_tab(self._byte) and self._byte != _NEWLINE:
            self._token.append(self._byte)
            self._next_byte()

    def _read_token_until_newline(self, recognize_escapes: bool) -> None:
        self._token.clear()
        escaped = False
        while True:
            if recognize_escapes and escaped:
                self._read_escaped(self._byte)
                escaped = False
            elif self._byte == _NEWLINE:
                return
            elif self._byte == _BACKSLASH:
                escaped = True
            else:
                self._token.append(self._byte)
            self._next_byte()

    def _read_quotable_name(
        self,
        kind: str,
        is_start: Callable[[int], bool],
        is_continuation: Callable[[int, bool], bool],
        terminator: int,
    ) -> None:
        self._token.clear()
        quoted = False
        escaped = False
        if not is_start(self._byte):
            return
        while True:
            byte = self._byte
            if escaped:
                self._read_escaped(byte)
                escaped = False
            elif byte == _QUOTE:
                quoted = not quoted
                if not quoted:
                    self._next_byte()
                    return
            elif byte == _NEWLINE:
                self._fail(
                    f"{kind} name {_quote(self._token_text())} contains unescaped new-line"
                )
            elif byte == _BACKSLASH:
                escaped = True
            else:
                self._token.append(byte)
            self._next_byte()
            if not is_continuation(self._byte, quoted) or (
                not quoted and self._byte == terminator
            ):
                return

    def _read_token_as_metric_name(self) -> None:
        self._read_quotable_name(
            "metric",
            is_valid_metric_name_start,
            is_valid_metric_name_continuation,
            _SPACE,
        )

    def _read_token_as_label_name(self) -> None:
        self._read_quotable_name(
            "label",
            is_valid_label_name_start,
            is_valid_label_name_continuation,
            _EQUALS,
        )

    def _read_token_as_label_value(self) -> None:
        self._token.clear()
        escaped = False
        while True:
            byte = self._next_byte()
            if escaped:
                if byte in (_QUOTE, _BACKSLASH):
                    self._token.append(byte)
                elif byte == _LETTER_N:
                    self._token.append(_NEWLINE)
                else:
                    self._current_pairs = []
                    self._fail(f"invalid escape sequence '\\{chr(byte)}'")
                escaped = False
                continue
            if byte == _QUOTE:
                return
            if byte == _NEWLINE:
                self._fail(
                    f"label value {_quote(self._token_text())} contains unescaped new-line"
                )
            if byte == _BACKSLASH:
                escaped = True
            else:
                self._token.append(byte)

    def _set_or_create_current_mf(self) -> None:
        self._is_summary_count = False
        self._is_summary_sum = False
        self._is_histogram_count = False
        self._is_histogram_sum = False
        name = self._token_text()
        family = self._families.get(name)
        if family is not None:
            self._current_mf = family
            return
        family = self._families.get(summary_metric_name(name))
        if family is not None and family.type == MetricType.SUMMARY:
            self._current_mf = family
            self._is_summary_count = is_count(name)
            self._is_summary_sum = is_sum(name)
            return
        family = self._families.get(histogram_metric_name(name))
        if family is not None and family.type == MetricType.HISTOGRAM:
            self._current_mf = family
            self._is_histogram_count = is_count(name)
            self._is_histogram_sum = is_sum(name)
            return
        self._current_mf = MetricFamily(name=name)
        self._families[name] = self._current_mf

    def _start_new_metric(self) -> None:
        self._set_or_create_current_mf()
        assert self._current_mf is not None
        if self._current_mf.type is None:
            self._current_mf.type = MetricType.UNTYPED
        self._current_metric = Metric()

    def _close_label_set(self) -> _State:
        if self._inside_braces and not self._name_in_braces:
            self._fail("invalid metric name")
        assert self._current_metric is not None
        self._current_metric.label.extend(self._current_pairs)
        self._current_pairs = []
        self._skip_blank_tab()
        return self._reading_value

    # States ------------------------------------------------------------

    def _start_of_line(self) -> _State:
        self._line_count += 1
        self._inside_braces = False
        self._name_in_braces = False
        try:
            self._skip_blank_tab()
        except _EndOfInput:
            return None
        if self._byte == _HASH:
            return self._start_comment
        if self._byte == _NEWLINE:
            return self._start_of_line
        if self._byte == _LBRACE:
            self._inside_braces = True
            return self._reading_labels
        return self._reading_metric_name

    def _start_comment(self) -> _State:
        self._skip_blank_tab()
        if self._byte == _NEWLINE:
            return self._start_of_line
        self._read_token_until_whitespace()
        if self._byte == _NEWLINE:
            return self._start_of_line
        keyword = self._token_text()
        if keyword not in ("HELP", "TYPE"):
            while self._byte != _NEWLINE:
                self._next_byte()
            return self._start_of_line
        self._skip_blank_tab()
        self._read_token_as_metric_name()
        if self._byte == _NEWLINE:
            return self._start_of_line
        if not is_blank_or_tab(self._byte):
            self._fail("invalid metric name in comment")
        self._set_or_create_current_mf()
        self._skip_blank_tab()
        if self._byte == _NEWLINE:
            return self._start_of_line
        return self._reading_help if keyword == "HELP" else self._reading_type

    def _reading_metric_name(self) -> _State:
        self._read_token_as_metric_name()
        if not self._token:
            self._fail("invalid metric name")
        self._start_new_metric()
        self._skip_blank_tab_if_current_blank_tab()
        return self._reading_labels

    def _reading_labels(self) -> _State:
        if self._type in (MetricType.SUMMARY, MetricType.HISTOGRAM):
            self._current_labels = {METRIC_NAME_LABEL: self._mf_name}
            self._current_quantile = math.nan
            self._current_bucket = math.nan
        if self._byte != _LBRACE:
            return self._reading_value
        return self._start_label_name

    def _start_label_name(self) -> _State:
        self._skip_blank_tab()
        if self._byte == _RBRACE:
            return self._close_label_set()
        self._read_token_as_label_name()
        if not self._token:
            self._fail(f"invalid label name for metric {_quote(self._mf_name)}")
        self._skip_blank_tab_if_current_blank_tab()
        if self._byte != _EQUALS:
            if self._inside_braces:
                if self._name_in_braces:
                    self._fail(f"multiple metric names for metric {_quote(self._mf_name)}")
                if self._byte == _COMMA:
                    self._start_new_metric()
                    self._name_in_braces = True
                    return self._start_label_name
                if self._byte == _RBRACE:
                    self._start_new_metric()
                    self._name_in_braces = True
                    return self._close_label_set()
                self._fail(f"unexpected end of metric name {_quote_byte(self._byte)}")
            self._current_pairs = []
            self._fail(f"expected '=' after label name, found {_quote_byte(self._byte)}")
        pair = LabelPair(name=self._token_text())
        self._current_pair = pair
        if pair.name == METRIC_NAME_LABEL:
            self._fail(f"label name {_quote(METRIC_NAME_LABEL)} is reserved")
        metric_type = self._type
        if not (metric_type == MetricType.SUMMARY and pair.name == QUANTILE_LABEL) and not (
            metric_type == MetricType.HISTOGRAM and pair.name == BUCKET_LABEL
        ):
            self._current_pairs.append(pair)
        names = [existing.name for existing in self._current_pairs]
        if len(set(names)) != len(names):
            self._current_pairs = []
            self._fail(f"duplicate label names for metric {_quote(self._mf_name)}")
        return self._start_label_value

    def _start_label_value(self) -> _State:
        self._skip_blank_tab()
        if self._byte != _QUOTE:
            self._fail(
                f"expected '\"' at start of label value, found {_quote_byte(self._byte)}"
            )
        self._read_token_as_label_value()
        try:
            value = bytes(self._token).decode("utf-8")
        except UnicodeDecodeError:
            self._fail(f"invalid label value {_quote(self._token_text())}")
        pair = self._current_pair
        assert pair is not None
        pair.value = value
        metric_type = self._type
        if metric_type == MetricType.SUMMARY:
            if pair.name == QUANTILE_LABEL:
                try:
                    self._current_quantile = parse_float(value)
                except ValueError:
                    self._current_pairs = []
                    self._fail(
                        "expected float as value for 'quantile' label, "
                        f"got {_quote(value)}"
                    )
            else:
                self._current_labels[pair.name] = value
        if metric_type == MetricType.HISTOGRAM:
            if pair.name == BUCKET_LABEL:
                try:
                    self._current_bucket = parse_float(value)
                except ValueError:
                    self._fail(
                        f"expected float as value for 'le' label, got {_quote(value)}"
                    )
            else:
                self._current_labels[pair.name] = value
        self._skip_blank_tab()
        if self._byte == _COMMA:
            return self._start_label_name
        if self._byte == _RBRACE:
            if self._current_mf is None:
                self._fail("invalid metric name")
            return self._close_label_set()
        self._current_pairs = []
        self._fail(f"unexpected end of label value {_quote(value)}")
        return None

    def _reading_value(self) -> _State:
        family = self._current_mf
        assert family is not None and self._current_metric is not None
        metric_type = self._type
        if metric_type in (MetricType.SUMMARY, MetricType.HISTOGRAM):
            seen = self._summaries if metric_type == MetricType.SUMMARY else self._histograms
            signature = labels_signature(self._current_labels)
            existing = seen.get(signature)
            if existing is not None:
                self._current_metric = existing
            else:
                seen[signature] = self._current_metric
                family.metric.append(self._current_metric)
        else:
            family.metric.append(self._current_metric)
        self._read_token_until_whitespace()
        text = self._token_text()
        try:
            value = parse_float(text)
        except ValueError:
            self._fail(f"expected float as value, got {_quote(text)}")
        metric = self._current_metric
        if metric_type == MetricType.COUNTER:
            metric.counter = value
        elif metric_type == MetricType.GAUGE:
            metric.gauge = value
        elif metric_type == MetricType.UNTYPED:
            metric.untyped = value
        elif metric_type == MetricType.SUMMARY:
            if metric.summary is None:
                metric.summary = Summary()
            if self._is_summary_count:
                metric.summary.sample_count = _to_uint64(value)
            elif self._is_summary_sum:
                metric.summary.sample_sum = value
            elif not math.isnan(self._current_quantile):
                metric.summary.quantile.append(Quantile(self._current_quantile, value))
        elif metric_type == MetricType.HISTOGRAM:
            if metric.histogram is None:
                metric.histogram = Histogram()
            if self._is_histogram_count:
                metric.histogram.sample_count = _to_uint64(value)
            elif self._is_histogram_sum:
                metric.histogram.sample_sum = value
            elif not math.isnan(self._current_bucket):
                metric.histogram.bucket.append(
                    Bucket(self._current_bucket, _to_uint64(value))
                )
        # Other types carry no sample value in this format; the sample is kept bare.
        if self._byte == _NEWLINE:
            return self._start_of_line
        return self._start_timestamp

    def _start_timestamp(self) -> _State:
        self._skip_blank_tab()
        self._read_token_until_whitespace()
        raw = bytes(self._token)
        timestamp = int(raw) if _INT_RE.fullmatch(raw) else None
        if timestamp is None or not _INT64_MIN <= timestamp <= _INT64_MAX:
            self._fail(f"expected integer as timestamp, got {_quote(self._token_text())}")
        assert self._current_metric is not None
        self._current_metric.timestamp_ms = timestamp
        self._read_token_until_newline(False)
        if self._token:
            self._fail(f"spurious string after timestamp: {_quote(self._token_text())}")
        return self._start_of_line

    def _reading_help(self) -> _State:
        family = self._current_mf
        assert family is not None
        if family.help is not None:
            self._fail(f"second HELP line for metric name {_quote(family.name)}")
        self._read_token_until_newline(True)
        family.help = self._token_text()
        return self._start_of_line

    def _reading_type(self) -> _State:
        family = self._current_mf
        assert family is not None
        if family.type is not None:
            self._fail(
                f"second TYPE line for metric name {_quote(family.name)}, "
                "or TYPE reported after samples"
            )
        self._read_token_until_newline(False)
        text = self._token_text()
        try:
            family.type = parse_metric_type(text)
        except ValueError:
            self._fail(f"unknown metric type {_quote(text)}")
        return self._start_of_line


def text_to_metric_families(stream: Stream) -> dict[str, MetricFamily]:
    """Parse text-format metrics from ``stream`` with a fresh parser."""
    return TextParser().text_to_metric_families(stream)