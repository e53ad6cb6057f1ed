"""
psu-energy — Report

Turns a finished Result into billing figures (kWh, cost) and renders them
as a text table or JSON.

Cost = kWh × price per kWh, rounded half-up to cents.
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from .models import GroupResult, Result

KWH_QUANT = Decimal("0.0001")
COST_QUANT = Decimal("0.01")


@dataclass
class ReportLine:
    """One row of the report: a month or the total."""
    label: str
    elapsed_s: float
    energy_joules: float
    kwh: Decimal
    cost: Decimal

    @classmethod
    def build(cls, label: str, group: GroupResult, price_per_kwh: Decimal) -> "ReportLine":
        kwh = Decimal(str(group.energy_kwh)).quantize(KWH_QUANT, ROUND_HALF_UP)
        cost = (Decimal(str(group.energy_kwh)) * price_per_kwh).quantize(COST_QUANT, ROUND_HALF_UP)
        return cls(
            label=label,
            elapsed_s=group.elapsed_seconds,
            energy_joules=group.energy_joules,
            kwh=kwh,
            cost=cost,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.label,
            "elapsed_s": round(self.elapsed_s, 3),
            "energy_j": round(self.energy_joules, 3),
            "energy_kwh": str(self.kwh),
            "cost": str(self.cost),
        }


@dataclass
class Report:
    currency: str
    price_per_kwh: Decimal
    total: ReportLine
    months: list[ReportLine] = field(default_factory=list)
    rollover_count: int = 0
    bad: bool = False
    records_seen: int = 0
    records_skipped: int = 0
    step_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "currency": self.currency,
            "price_per_kwh": str(self.price_per_kwh),
            "total": self.total.to_dict(),
            "months": [m.to_dict() for m in self.months],
            "rollovers": self.rollover_count,
            "bad": self.bad,
            "records": {"seen": self.records_seen, "skipped": self.records_skipped},
            "steps": self.step_counts,
        }


def build_report(result: Result, price_per_kwh: Decimal, currency: str = "USD") -> Report:
    return Report(
        currency=currency,
        price_per_kwh=price_per_kwh,
        total=ReportLine.build("total", result.total, price_per_kwh),
        months=[
            ReportLine.build(str(key), group, price_per_kwh)
            for key, group in result.sorted_buckets()
        ],
        rollover_count=result.rollover_count,
        bad=result.bad,
        records_seen=result.records_seen,
        records_skipped=result.records_skipped,
        step_counts={k.value: v for k, v in sorted(result.step_counts.items())},
    )


def format_duration(seconds: float) -> str:
    """3725.5 → '0d 01:02:05'"""
    whole = int(seconds)
    days, rem = divmod(whole, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{days}d {hours:02d}:{minutes:02d}:{secs:02d}"


def render_text(report: Report) -> str:
    lines = []
    header = f"{'Period':<10} {'Elapsed':>14} {'Energy (kWh)':>14} {'Cost (' + report.currency + ')':>12}"
    lines.append(header)
    lines.append("─" * len(header))

    for m in report.months:
        lines.append(
            f"{m.label:<10} {format_duration(m.elapsed_s):>14} {m.kwh:>14,.3f} {m.cost:>12,.2f}"
        )

    t = report.total
    lines.append("─" * len(header))
    lines.append(
        f"{'Total':<10} {format_duration(t.elapsed_s):>14} {t.kwh:>14,.3f} {t.cost:>12,.2f}"
    )
    lines.append("")
    lines.append(f"Total energy: {t.energy_joules:,.0f} J")
    lines.append(f"Price: {report.price_per_kwh} {report.currency}/kWh")
    lines.append(f"Records: {report.records_seen} read, {report.records_skipped} skipped")
    lines.append(f"Rollovers: {report.rollover_count}")
    if report.step_counts:
        steps = ", ".join(f"{k}={v}" for k, v in report.step_counts.items())
        lines.append(f"Steps: {steps}")
    if report.bad:
        lines.append("⚠ Inconsistent data detected, totals may be incomplete")
    return "\n".join(lines)


def render_json(report: Report) -> str:
    return json.dumps(report.to_dict(), indent=2)
