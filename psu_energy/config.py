"""
psu-energy — Configuration

Environment-driven settings (pydantic-settings) with an optional YAML
override file, plus the tuning parameters handed to the accounting core.

Precedence, lowest to highest:
    defaults → environment / .env → YAML file (--config) → CLI flags
"""

from dataclasses import dataclass
from datetime import tzinfo
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings

from .errors import ConfigError


class Settings(BaseSettings):
    """All config sourced from environment / .env file."""

    # ── Input ────────────────────────────────────────────────────────────
    DEVICE_DESCRIPTION: str = "Corsair HX1000i"

    # ── Billing ──────────────────────────────────────────────────────────
    PRICE_PER_KWH: Decimal = Decimal("0.25")
    CURRENCY: str = "USD"

    # ── Month bucketing ──────────────────────────────────────────────────
    TIMEZONE: Optional[str] = None  # IANA name; None → host local time

    # ── Step classification tolerances (seconds) ─────────────────────────
    CLOCK_TOLERANCE_S: float = 2.0    # wall clock vs. lifetime counter
    COUNTER_TOLERANCE_S: float = 1.0  # lifetime counter vs. boot counter

    # ── Observability ────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # "json" or "text"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def zone(self) -> Optional[tzinfo]:
        if not self.TIMEZONE:
            return None
        try:
            return ZoneInfo(self.TIMEZONE)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"Unknown timezone {self.TIMEZONE!r}") from e

    def accounting(self) -> "AccountingConfig":
        return AccountingConfig(
            clock_tolerance_s=self.CLOCK_TOLERANCE_S,
            counter_tolerance_s=self.COUNTER_TOLERANCE_S,
            tz=self.zone(),
        )


@dataclass(frozen=True)
class AccountingConfig:
    """Tuning parameters for the step classifier and accumulator."""

    # Host clock and lifetime counter agree if they differ by less than this
    clock_tolerance_s: float = 2.0

    # Lifetime and boot counters advanced together (no reboot) within this
    counter_tolerance_s: float = 1.0

    # Zone used to derive (year, month) bucket keys; None = host local time
    tz: Optional[tzinfo] = None


def load_settings(config_path: Optional[str] = None, **overrides) -> Settings:
    """
    Build Settings from the environment, an optional YAML file and
    explicit overrides (None values are ignored).
    """
    values: dict = {}

    if config_path:
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping")
        values.update({str(k).upper(): v for k, v in raw.items()})

    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
