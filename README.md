# promtext

A small, dependency-free parser for the Prometheus text exposition format,
plus helpers that render durations and Unix timestamps in human-readable form.

## Installation

```
pip install promtext
```

## Parsing metrics

`promtext.text_parse.text_to_metric_families` takes the input as `bytes`,
`str`, or a binary or text file object, and returns a dictionary that maps
each metric family name to a `promtext.metrics.MetricFamily`.

```python
from promtext.text_parse import text_to_metric_families, ParseError

data = b"""\
# HELP http_requests_total Total requests.
# TYPE http_requests_total counter
http_requests_total{method="get"} 1027 1395066363000
"""

families = text_to_metric_families(data)
family = families["http_requests_total"]
print(family.help, family.type)          # Total requests. MetricType.COUNTER
for metric in family.metric:
    labels = [(pair.name, pair.value) for pair in metric.label]
    print(labels, metric.counter, metric.timestamp_ms)
```

### The data model

The classes in `promtext.metrics` are dataclasses:

- `MetricFamily` — `name`, `help`, `type` (a `MetricType`) and `metric`, a list of `Metric`.
- `Metric` — `label` (a list of `LabelPair`), one of `counter`, `gauge`,
  `untyped` (floats), `summary` (`Summary`) or `histogram` (`Histogram`),
  depending on the family's type, and an optional `timestamp_ms`.
- `Summary` — `sample_count`, `sample_sum` and `quantile`, a list of `Quantile`
  (`quantile`, `value`).
- `Histogram` — `sample_count`, `sample_sum` and `bucket`, a list of `Bucket`
  (`upper_bound`, `cumulative_count`).

`MetricType` is an `IntEnum` with `COUNTER`, `GAUGE`, `SUMMARY`, `UNTYPED`,
`HISTOGRAM` and `GAUGE_HISTOGRAM`; `parse_metric_type(name)` looks one up
case-insensitively and raises `ValueError` for an unknown name. Instances
compare equal field by field, with NaN equal to NaN.

### Behaviour

- Samples seen before any `# TYPE` line make their family `UNTYPED`; a `TYPE`
  line after samples, or a second `HELP` or `TYPE` line, is an error.
- Summary `_sum`/`_count` lines and `quantile` labels, and histogram
  `_bucket`, `_sum` and `_count` lines and `le` labels, are gathered into a
  single `Metric` per label set.
- Quoted metric and label names (`{"my.metric","label.name"="value"}`) are
  accepted, with the `\\`, `\n` and `\"` escapes.
- Values are decimal floats, `Inf` or `NaN`; hexadecimal floats and
  underscores are rejected. Timestamps are 64-bit integers.
- Families without samples are left out of the result. Neither metrics within
  a family nor label pairs within a metric are sorted, and duplicate metrics
  are kept as they appear. Duplicate label names within one metric are an error.
- The input must end with a newline.

Malformed input raises `ParseError` (a `ValueError`), which carries the line
number and message:

```python
try:
    text_to_metric_families(b"metric{label=bla} 3.14\n")
except ParseError as err:
    print(err.line, err.msg)
    print(err)  # text format parsing error in line 1: expected '"' at start of label value, found 'b'
```

A `TextParser` instance can be reused for several inputs through
`TextParser().text_to_metric_families(stream)`; it must not be shared between
threads that parse concurrently.

`promtext.names` holds the lower-level helpers the parser uses:
`parse_float`, the `_count`/`_sum`/`_bucket` suffix rules
(`is_count`, `is_sum`, `is_bucket`, `summary_metric_name`,
`histogram_metric_name`), the name character checks, and `labels_signature`,
an order-independent 64-bit FNV-1a hash of a label mapping.

## Humanizing durations and timestamps

```python
from promtext.timefmt import humanize_duration, humanize_timestamp

humanize_duration(86400 + 3600)     # '1d 1h 0m 0s'
humanize_duration(0.12345)          # '123.5ms'
humanize_duration(-1)               # '-1s'
humanize_timestamp(1435065584.128)  # '2015-06-23 13:19:44.128 +0000 UTC'
humanize_timestamp("NaN")           # 'NaN'
```

Both accept `int`, `float`, numeric strings and `datetime.timedelta` values
(through `convert_to_float`). NaN and infinite values are rendered as `NaN`,
`+Inf` or `-Inf`. An unparsable string raises `ValueError`, an unsupported
type raises `TypeError`, and a timestamp whose nanosecond count overflows a
signed 64-bit integer raises `ValueError`.

`float_to_time(seconds)` returns the matching UTC `datetime`, truncated to
the millisecond.

## What it does not do

The package only reads the text format. It does not write metrics back out
as text, does not read or write the protobuf exposition format, does not
scrape endpoints, and has no command-line tool.