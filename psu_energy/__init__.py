"""
psu-energy — time and energy accounting for PSU telemetry logs.
"""

from .accumulator import account
from .classifier import classify_and_account
from .config import AccountingConfig, Settings, load_settings
from .driver import LedgerRun, run
from .errors import (
    ConfigError,
    ExtractionError,
    FailureCategory,
    NonMonotonicInputError,
    PsuEnergyError,
)
from .extractor import ExtractionResult, extract, extract_all, parse_record, parse_timestamp
from .models import GroupKey, GroupResult, Measurement, Result, StepKind

__version__ = "1.0.0"
