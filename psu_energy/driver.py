"""
psu-energy — Run Driver

Walks the extracted records in log order and runs one classification step
per adjacent pair of good measurements.

    raw line ──→ extractor ──── failed? ──→ log + skip (never becomes previous)
                    │
                    ▼
              previous, current ──→ classifier ──→ accumulator
"""

import logging
from typing import Iterable, Optional

from .classifier import classify_and_account
from .config import AccountingConfig
from .errors import NonMonotonicInputError
from .extractor import ExtractionResult, truncate_raw
from .models import Measurement, Result, StepKind

logger = logging.getLogger("psu_energy.driver")


class LedgerRun:
    """Single pass over a telemetry log. Holds the only mutable state."""

    def __init__(self, config: Optional[AccountingConfig] = None) -> None:
        self.config = config or AccountingConfig()
        self.result = Result()
        self.previous: Optional[Measurement] = None

    def feed(self, extracted: ExtractionResult) -> None:
        """Consume one extraction result."""
        self.result.records_seen += 1

        if not extracted.ok:
            self.result.records_skipped += 1
            logger.warning(
                "Skipping record (%s): %s | raw=%s",
                extracted.category.value, extracted.reason, truncate_raw(extracted.raw),
                extra={"category": extracted.category.value},
            )
            return

        self.feed_measurement(extracted.measurement)

    def feed_measurement(self, current: Measurement) -> Optional[StepKind]:
        """Run one step against the last good measurement, if any."""
        previous, self.previous = self.previous, current
        if previous is None:
            return None

        try:
            return classify_and_account(self.result, previous, current, self.config)
        except NonMonotonicInputError as e:
            # Resync on the new sample; the run is reported as failed
            self.result.mark_bad()
            self.result.count_step(StepKind.NON_MONOTONIC)
            logger.error(
                "Non-monotonic input, step skipped: %s", e,
                extra={"step": StepKind.NON_MONOTONIC.value},
            )
            return StepKind.NON_MONOTONIC


def run(records: Iterable[ExtractionResult], config: Optional[AccountingConfig] = None) -> Result:
    ledger = LedgerRun(config)
    for extracted in records:
        ledger.feed(extracted)

    result = ledger.result
    logger.info(
        "Run complete: records=%d skipped=%d buckets=%d rollovers=%d bad=%s",
        result.records_seen, result.records_skipped, len(result.buckets),
        result.rollover_count, result.bad,
    )
    return result
