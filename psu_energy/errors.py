"""
psu-energy — Exceptions
"""

from enum import Enum


class FailureCategory(str, Enum):
    """Why a log record could not be turned into a measurement."""
    PARSE_ERROR = "PARSE_ERROR"          # malformed JSON or record shape
    TIMESTAMP_ERROR = "TIMESTAMP_ERROR"  # missing or unparseable timestamp
    DEVICE_MISSING = "DEVICE_MISSING"    # target device not in the record
    FIELD_MISSING = "FIELD_MISSING"      # required status key absent
    UNIT_MISMATCH = "UNIT_MISMATCH"      # status key carries the wrong unit
    VALUE_ERROR = "VALUE_ERROR"          # non-numeric, NaN or Inf value


class PsuEnergyError(Exception):
    """Base class for all psu-energy errors."""


class ConfigError(PsuEnergyError):
    pass


class ExtractionError(PsuEnergyError):
    """A single log record could not be turned into a Measurement."""

    def __init__(self, category: FailureCategory, message: str) -> None:
        super().__init__(message)
        self.category = category


class NonMonotonicInputError(PsuEnergyError):
    """Two adjacent measurements are out of order or carry negative counters."""
