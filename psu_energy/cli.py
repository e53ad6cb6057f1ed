"""
psu-energy — Command line entry point

Usage:
    python -m psu_energy status.jsonl
    python -m psu_energy status.jsonl --config psu-energy.yaml --format json

Exit status:
    0  run completed, data consistent
    1  run completed, inconsistent data detected (see ERROR log lines)
    2  usage, configuration or input file error
"""

import argparse
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from .config import load_settings
from .driver import run
from .errors import PsuEnergyError
from .extractor import extract_all
from .log import setup_logging
from .report import build_report, render_json, render_text

logger = logging.getLogger("psu_energy.cli")

EXIT_OK = 0
EXIT_BAD_DATA = 1
EXIT_ERROR = 2


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a decimal number: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="psu-energy",
        description="Energy and cost accounting from a liquidctl PSU status log",
    )
    parser.add_argument("input", type=Path, help="JSON-lines status log")
    parser.add_argument("--config", type=str, default=None,
                        help="Path to YAML configuration file")
    parser.add_argument("--device", type=str, default=None,
                        help="Device description to read (default: Corsair HX1000i)")
    parser.add_argument("--price", type=_decimal, default=None,
                        help="Price per kWh")
    parser.add_argument("--currency", type=str, default=None)
    parser.add_argument("--timezone", type=str, default=None,
                        help="IANA zone for month buckets (default: host local time)")
    parser.add_argument("--format", choices=["text", "json"], default="text",
                        help="Report format")
    parser.add_argument("--log-level", type=str, default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-format", type=str, default=None, choices=["json", "text"])
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(
            args.config,
            DEVICE_DESCRIPTION=args.device,
            PRICE_PER_KWH=args.price,
            CURRENCY=args.currency,
            TIMEZONE=args.timezone,
            LOG_LEVEL=args.log_level,
            LOG_FORMAT=args.log_format,
        )
    except PsuEnergyError as e:
        print(f"psu-energy: {e}", file=sys.stderr)
        return EXIT_ERROR

    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    if not args.input.exists():
        logger.error("Input file %s does not exist", args.input)
        return EXIT_ERROR

    try:
        accounting = settings.accounting()
        with args.input.open("r", encoding="utf-8", errors="replace") as f:
            result = run(extract_all(f, settings.DEVICE_DESCRIPTION), accounting)
    except PsuEnergyError as e:
        logger.error("%s", e)
        return EXIT_ERROR
    except OSError as e:
        logger.error("Cannot read %s: %s", args.input, e)
        return EXIT_ERROR

    report = build_report(result, settings.PRICE_PER_KWH, settings.CURRENCY)
    print(render_json(report) if args.format == "json" else render_text(report))

    return EXIT_BAD_DATA if result.bad else EXIT_OK
