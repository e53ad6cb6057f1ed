"""
psu-energy — Step Classifier

Reconciles the host wall clock with the PSU's two uptime counters for one
pair of adjacent measurements, picks an integration regime, and feeds the
accumulator.

Decision order (first match wins):

    |Δwall − Δtotal| < clock tol      → CONSISTENT    integrate Δwall
    |Δtotal − Δcurrent| < counter tol → IMPRECISE     integrate Δwall
    Δwall > uptime (device rebooted):
        Δtotal < uptime               → ROLLOVER_GAP  account current session only
        otherwise                     → ROLLOVER      integrate Δtotal
    anything else                     → INCONSISTENT  mark run bad, account nothing

Integration is trapezoidal over input power and is attributed to the month
the interval starts in.
"""

import logging
from typing import Optional

from .accumulator import account
from .config import AccountingConfig
from .errors import NonMonotonicInputError
from .models import NS_PER_SECOND, Measurement, Result, StepKind

logger = logging.getLogger("psu_energy.step")

DEFAULT_CONFIG = AccountingConfig()


def _check_monotonic(previous: Measurement, current: Measurement) -> None:
    if current.timestamp_ns <= previous.timestamp_ns:
        raise NonMonotonicInputError(
            f"Timestamp went from {previous.timestamp.isoformat()} "
            f"to {current.timestamp.isoformat()}"
        )
    for m in (previous, current):
        if m.uptime_current < 0 or m.uptime_total < 0:
            raise NonMonotonicInputError(
                f"Negative uptime counter at {m.timestamp.isoformat()}: "
                f"current={m.uptime_current} total={m.uptime_total}"
            )


def trapezoid_joules(previous: Measurement, current: Measurement, seconds: float) -> float:
    return (previous.input_power + current.input_power) * seconds / 2


def classify_and_account(
    result: Result,
    previous: Measurement,
    current: Measurement,
    config: Optional[AccountingConfig] = None,
) -> StepKind:
    """
    Classify one step and account its time and energy into `result`.

    Raises NonMonotonicInputError, leaving `result` untouched, when the
    pair is out of order or carries negative counters.
    """
    config = config or DEFAULT_CONFIG
    _check_monotonic(previous, current)

    delta_wall_ns = current.timestamp_ns - previous.timestamp_ns
    delta_wall = delta_wall_ns / NS_PER_SECOND
    delta_uptime_total = current.uptime_total - previous.uptime_total
    delta_uptime_current = current.uptime_current - previous.uptime_current
    uptime = current.uptime_current
    uptime_counter_suspect = delta_uptime_total < uptime

    if abs(delta_wall - delta_uptime_total) < config.clock_tolerance_s:
        kind = StepKind.CONSISTENT

    elif abs(delta_uptime_total - delta_uptime_current) < config.counter_tolerance_s:
        kind = StepKind.IMPRECISE
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Host clock drift at %s: wall=%.3fs device=%.3fs",
                current.timestamp.isoformat(), delta_wall, delta_uptime_total,
                extra={"step": kind.value},
            )

    elif delta_wall > uptime:
        result.rollover_count += 1

        if uptime_counter_suspect:
            # Lifetime counter can't explain the session: keep the current
            # boot session, drop the rest of the gap.
            uptime_ns = round(uptime * NS_PER_SECOND)
            account(
                result, current.timestamp_ns, uptime_ns,
                current.input_power * uptime, config.tz,
            )
            logger.info(
                "ROLLOVER #%d at %s: gap=%.3fs uptime=%.3fs Δtotal=%.3fs, "
                "lifetime counter suspect, discarded %.3fs",
                result.rollover_count, current.timestamp.isoformat(),
                delta_wall, uptime, delta_uptime_total, delta_wall - uptime,
                extra={"step": StepKind.ROLLOVER_GAP.value},
            )
            result.count_step(StepKind.ROLLOVER_GAP)
            return StepKind.ROLLOVER_GAP

        logger.info(
            "ROLLOVER #%d at %s: gap=%.3fs uptime=%.3fs, using Δtotal=%.3fs",
            result.rollover_count, current.timestamp.isoformat(),
            delta_wall, uptime, delta_uptime_total,
            extra={"step": StepKind.ROLLOVER.value},
        )
        kind = StepKind.ROLLOVER
        delta_wall = delta_uptime_total
        delta_wall_ns = round(delta_uptime_total * NS_PER_SECOND)

    else:
        result.mark_bad()
        logger.error(
            "INCONSISTENT step %s → %s: "
            "prev(current=%.3fs total=%.3fs) cur(current=%.3fs total=%.3fs) "
            "Δwall=%.3fs Δtotal=%.3fs Δcurrent=%.3fs",
            previous.timestamp.isoformat(), current.timestamp.isoformat(),
            previous.uptime_current, previous.uptime_total,
            current.uptime_current, current.uptime_total,
            delta_wall, delta_uptime_total, delta_uptime_current,
            extra={"step": StepKind.INCONSISTENT.value},
        )
        result.count_step(StepKind.INCONSISTENT)
        return StepKind.INCONSISTENT

    account(
        result, previous.timestamp_ns, delta_wall_ns,
        trapezoid_joules(previous, current, delta_wall), config.tz,
    )
    result.count_step(kind)
    return kind
