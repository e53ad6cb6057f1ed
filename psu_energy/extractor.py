"""
psu-energy — Measurement Extractor

Turns one record of a `liquidctl --json` status log into a Measurement.

The log is a stream of JSON documents separated by whitespace: one per line,
or pretty-printed over several lines. Record contract:
    {
      "timestamp": "2023-05-31T00:13:57,906371842+03:00",
      "data": [
        {"description": "Corsair HX1000i",
         "status": [{"key": "Current uptime", "value": 5127.0, "unit": "s"},
                    {"key": "Total uptime", "value": 8.1e7, "unit": "s"},
                    {"key": "Estimated input power", "value": 212.0, "unit": "W"},
                    ...]},
        ...
      ]
    }

Any record that fails parsing is reported as a failed ExtractionResult with a
FailureCategory; the driver logs it and moves on.
"""

import calendar
import json
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import IO, Iterator, Optional

from .errors import ExtractionError, FailureCategory
from .models import NS_PER_SECOND, Measurement

# 2023-05-31T00:13:57,906371842+03:00  (fraction optional, ',' or '.')
TIMESTAMP_PATTERN = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:[,.](\d+))?([+-])(\d{2}):(\d{2})$"
)

KEY_UPTIME_CURRENT = "Current uptime"
KEY_UPTIME_TOTAL = "Total uptime"
KEY_INPUT_POWER = "Estimated input power"
KEY_OUTPUT_POWER = "Total power output"

# status key → (expected unit, required)
STATUS_FIELDS = {
    KEY_UPTIME_CURRENT: ("s", True),
    KEY_UPTIME_TOTAL: ("s", True),
    KEY_INPUT_POWER: ("W", True),
    KEY_OUTPUT_POWER: ("W", False),
}

RAW_RECORD_LIMIT = 4000  # truncate massive records in diagnostics

# Instants representable as a datetime in any local zone
MIN_EPOCH_SECONDS = calendar.timegm((1, 1, 2, 0, 0, 0))
MAX_EPOCH_SECONDS = calendar.timegm((9999, 12, 30, 23, 59, 59))

_decoder = json.JSONDecoder()


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of extracting one record: a measurement or a failure."""
    raw: str
    measurement: Optional[Measurement] = None
    category: Optional[FailureCategory] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.measurement is not None

    @classmethod
    def success(cls, raw: str, measurement: Measurement) -> "ExtractionResult":
        return cls(raw=raw, measurement=measurement)

    @classmethod
    def failure(cls, raw: str, error: ExtractionError) -> "ExtractionResult":
        return cls(raw=raw, category=error.category, reason=str(error))


def parse_timestamp(s: str) -> int:
    """Parse a host timestamp with explicit UTC offset into epoch nanoseconds."""
    if not isinstance(s, str):
        raise ExtractionError(FailureCategory.TIMESTAMP_ERROR, f"Timestamp is not a string: {s!r}")

    m = TIMESTAMP_PATTERN.match(s.strip())
    if m is None:
        raise ExtractionError(FailureCategory.TIMESTAMP_ERROR, f"Bad timestamp: {s!r}")

    base, fraction, sign, off_h, off_m = m.groups()
    try:
        wall = datetime.strptime(base, "%Y-%m-%dT%H:%M:%S")
    except ValueError as e:
        raise ExtractionError(FailureCategory.TIMESTAMP_ERROR, f"Bad timestamp: {s!r} ({e})") from e

    offset_s = int(off_h) * 3600 + int(off_m) * 60
    if sign == "-":
        offset_s = -offset_s

    seconds = calendar.timegm(wall.timetuple()) - offset_s
    if not MIN_EPOCH_SECONDS <= seconds <= MAX_EPOCH_SECONDS:
        raise ExtractionError(FailureCategory.TIMESTAMP_ERROR, f"Timestamp out of range: {s!r}")

    # Digits past nanoseconds are truncated
    nanos = int((fraction or "0")[:9].ljust(9, "0"))
    return seconds * NS_PER_SECOND + nanos


def parse_item(item: dict, unit: str) -> float:
    """Return the numeric value of a status item, checking its unit."""
    if item.get("unit") != unit:
        raise ExtractionError(
            FailureCategory.UNIT_MISMATCH,
            f"Bad item: {json.dumps(item)}, expected unit: \"{unit}\"",
        )

    v = item.get("value")
    if not isinstance(v, bool) and isinstance(v, (int, float)):
        try:
            value = float(v)
        except OverflowError:
            value = math.inf
        if math.isfinite(value):
            return value

    raise ExtractionError(
        FailureCategory.VALUE_ERROR,
        f"Bad item: {truncate_raw(json.dumps(item))}, value is not a finite number",
    )


def _find_device_status(doc: dict, device_description: str) -> list:
    data = doc.get("data")
    if not isinstance(data, list):
        raise ExtractionError(FailureCategory.PARSE_ERROR, "Record has no 'data' array")

    status = None
    for device in data:
        if isinstance(device, dict) and device.get("description") == device_description:
            status = device.get("status")

    if status is None:
        raise ExtractionError(
            FailureCategory.DEVICE_MISSING,
            f"Device {device_description!r} not found in record",
        )
    if not isinstance(status, list):
        raise ExtractionError(
            FailureCategory.PARSE_ERROR,
            f"Device {device_description!r} has no 'status' array",
        )
    return status


def parse_record(raw: str, device_description: str) -> Measurement:
    """Parse one raw JSON record into a Measurement. Raises ExtractionError."""
    try:
        doc = json.loads(raw)
    except (json.JSONDecodeError, RecursionError) as e:
        raise ExtractionError(FailureCategory.PARSE_ERROR, f"Malformed JSON: {e}") from e

    if not isinstance(doc, dict):
        raise ExtractionError(FailureCategory.PARSE_ERROR, "Record is not a JSON object")
    if "timestamp" not in doc:
        raise ExtractionError(FailureCategory.TIMESTAMP_ERROR, "Record has no 'timestamp'")

    timestamp_ns = parse_timestamp(doc["timestamp"])

    values: dict[str, float] = {}
    for item in _find_device_status(doc, device_description):
        if not isinstance(item, dict):
            continue
        key = item.get("key")
        if isinstance(key, str) and key in STATUS_FIELDS:
            unit, _ = STATUS_FIELDS[key]
            values[key] = parse_item(item, unit)

    for key, (_, required) in STATUS_FIELDS.items():
        if required and key not in values:
            raise ExtractionError(
                FailureCategory.FIELD_MISSING,
                f"Device {device_description!r} has no {key!r} entry",
            )

    return Measurement(
        timestamp_ns=timestamp_ns,
        uptime_current=values[KEY_UPTIME_CURRENT],
        uptime_total=values[KEY_UPTIME_TOTAL],
        input_power=values[KEY_INPUT_POWER],
        output_power=values.get(KEY_OUTPUT_POWER),
    )


def extract(raw: str, device_description: str) -> ExtractionResult:
    """Per-record wrapper around parse_record() that never raises."""
    try:
        return ExtractionResult.success(raw, parse_record(raw, device_description))
    except ExtractionError as e:
        return ExtractionResult.failure(raw, e)


def iter_records(stream: IO[str]) -> Iterator[str]:
    """
    Yield the raw text of each JSON document in the log, in order.

    Text that does not decode is yielded up to the end of its line, so the
    caller reports it as a failed record, and decoding resumes on the next line.
    """
    text = stream.read()
    pos, end = 0, len(text)

    while True:
        while pos < end and text[pos].isspace():
            pos += 1
        if pos >= end:
            return

        try:
            _, stop = _decoder.raw_decode(text, pos)
        except (json.JSONDecodeError, RecursionError):
            stop = text.find("\n", pos)
            if stop == -1:
                stop = end
        yield text[pos:stop]
        pos = stop


def extract_all(stream: IO[str], device_description: str) -> Iterator[ExtractionResult]:
    for raw in iter_records(stream):
        yield extract(raw, device_description)


def truncate_raw(raw: str) -> str:
    if len(raw) <= RAW_RECORD_LIMIT:
        return raw
    return raw[:RAW_RECORD_LIMIT] + "…"
