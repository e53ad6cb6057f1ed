import calendar
import json
import logging
from datetime import datetime, timezone

import pytest

from psu_energy.config import AccountingConfig
from psu_energy.models import NS_PER_SECOND, Measurement


def ns(text: str) -> int:
    """'2024-01-31T23:59:00' (UTC) → epoch nanoseconds"""
    dt = datetime.fromisoformat(text)
    return calendar.timegm(dt.timetuple()) * NS_PER_SECOND + dt.microsecond * 1000


def measurement(at: str, uptime_current: float, uptime_total: float, power: float = 500.0,
                offset_s: float = 0.0) -> Measurement:
    return Measurement(
        timestamp_ns=ns(at) + round(offset_s * NS_PER_SECOND),
        uptime_current=uptime_current,
        uptime_total=uptime_total,
        input_power=power,
    )


def record(at: str, uptime_current: float, uptime_total: float, power: float = 500.0,
           device: str = "Corsair HX1000i", input_unit: str = "W") -> str:
    """One liquidctl status line as written to the log."""
    return json.dumps({
        "timestamp": at,
        "data": [
            {
                "bus": "hid",
                "address": "/dev/hidraw3",
                "description": "NZXT Kraken X63",
                "status": [{"key": "Liquid temperature", "value": 31.2, "unit": "°C"}],
            },
            {
                "bus": "hid",
                "address": "/dev/hidraw5",
                "description": device,
                "status": [
                    {"key": "Current uptime", "value": uptime_current, "unit": "s"},
                    {"key": "Total uptime", "value": uptime_total, "unit": "s"},
                    {"key": "Temperature 1", "value": 41.5, "unit": "°C"},
                    {"key": "Total power output", "value": power * 0.9, "unit": "W"},
                    {"key": "Estimated input power", "value": power, "unit": input_unit},
                ],
            },
        ],
    })


@pytest.fixture
def utc_config() -> AccountingConfig:
    return AccountingConfig(tz=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    # cli.main() installs its own handler; hand records back to caplog
    logger = logging.getLogger("psu_energy")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("DEVICE_DESCRIPTION", "PRICE_PER_KWH", "CURRENCY", "TIMEZONE",
                 "LOG_LEVEL", "LOG_FORMAT", "CLOCK_TOLERANCE_S", "COUNTER_TOLERANCE_S"):
        monkeypatch.delenv(name, raising=False)
