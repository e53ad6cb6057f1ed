"""
psu-energy — Bucketed Accumulator

Adds elapsed time and energy to the calendar-month bucket an interval
starts in, and to the run total, in one operation.

Intervals are never split: a step that starts on 31 Jan 23:59 and ends on
1 Feb 00:01 is attributed to January in full. Monthly figures can therefore
be off by at most one sample interval at each month boundary.
"""

from datetime import tzinfo
from typing import Optional

from .models import GroupKey, GroupResult, Result


def account(
    result: Result,
    at_ns: int,
    elapsed_ns: int,
    energy_joules: float,
    tz: Optional[tzinfo] = None,
) -> GroupKey:
    """
    Attribute one interval starting at `at_ns` to its month bucket.

    The bucket is created on first use. Total and bucket are updated
    together so total == sum(buckets) holds after every call.
    Returns the bucket key used.
    """
    key = GroupKey.from_timestamp(at_ns, tz)

    bucket = result.buckets.get(key)
    if bucket is None:
        bucket = GroupResult()
        result.buckets[key] = bucket

    bucket.add(elapsed_ns, energy_joules)
    result.total.add(elapsed_ns, energy_joules)
    return key
