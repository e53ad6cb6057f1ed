"""
psu-energy — Data Model

Measurement   one telemetry sample from the PSU
GroupKey      calendar (year, month) bucket key
GroupResult   elapsed time + energy accumulated for one bucket (or in total)
Result        full accounting state for a run
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Optional

NS_PER_SECOND = 1_000_000_000
JOULES_PER_KWH = 3_600_000.0
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class StepKind(str, Enum):
    """Integration regime chosen for one pair of adjacent measurements."""
    CONSISTENT = "CONSISTENT"          # host clock agrees with lifetime counter
    IMPRECISE = "IMPRECISE"            # device counters agree, host clock doesn't
    ROLLOVER = "ROLLOVER"              # reboot, lifetime counter still trusted
    ROLLOVER_GAP = "ROLLOVER_GAP"      # reboot, only current session accounted
    INCONSISTENT = "INCONSISTENT"      # unclassifiable, nothing accounted
    NON_MONOTONIC = "NON_MONOTONIC"    # out-of-order input, nothing accounted


@dataclass(frozen=True, slots=True)
class Measurement:
    """One PSU sample. Timestamps are UTC epoch nanoseconds."""
    timestamp_ns: int
    uptime_current: float   # s since last device boot
    uptime_total: float     # s since first device boot
    input_power: float      # W
    output_power: Optional[float] = None  # W, informational only

    @property
    def timestamp(self) -> datetime:
        return EPOCH + timedelta(microseconds=self.timestamp_ns // 1000)


@dataclass(frozen=True, order=True, slots=True)
class GroupKey:
    """Calendar month in local time. Ordered by (year, month)."""
    year: int
    month: int

    @classmethod
    def from_timestamp(cls, timestamp_ns: int, tz: Optional[tzinfo] = None) -> "GroupKey":
        # tz=None → fromtimestamp() yields host local time, DST included
        local = datetime.fromtimestamp(timestamp_ns // NS_PER_SECOND, tz=tz)
        return cls(local.year, local.month)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass
class GroupResult:
    """Accumulated elapsed time and energy."""
    elapsed_ns: int = 0
    energy_joules: float = 0.0

    @property
    def elapsed(self) -> timedelta:
        return timedelta(microseconds=self.elapsed_ns // 1000)

    @property
    def elapsed_seconds(self) -> float:
        return self.elapsed_ns / NS_PER_SECOND

    @property
    def energy_kwh(self) -> float:
        return self.energy_joules / JOULES_PER_KWH

    def add(self, elapsed_ns: int, energy_joules: float) -> None:
        self.elapsed_ns += elapsed_ns
        self.energy_joules += energy_joules


@dataclass
class Result:
    """
    Accounting state for a whole run.

    total always equals the sum over buckets; both are only ever updated
    together through accumulator.account().
    """
    total: GroupResult = field(default_factory=GroupResult)
    buckets: dict[GroupKey, GroupResult] = field(default_factory=dict)
    rollover_count: int = 0
    bad: bool = False

    # Run statistics for the report
    step_counts: dict[StepKind, int] = field(default_factory=dict)
    records_seen: int = 0
    records_skipped: int = 0

    def mark_bad(self) -> None:
        self.bad = True

    def count_step(self, kind: StepKind) -> None:
        self.step_counts[kind] = self.step_counts.get(kind, 0) + 1

    def sorted_buckets(self) -> list[tuple[GroupKey, GroupResult]]:
        return sorted(self.buckets.items())
