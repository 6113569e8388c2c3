"""Command-line entry for familycal.

``python -m familycal expand`` reads stored event rows as JSON, materializes a
date range and prints the instances (and optionally their grid layout) as JSON.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Any, NoReturn, Optional

from dateutil import parser as date_parser

from familycal import __version__
from familycal.calendar.models import TimeWindow
from familycal.calendar.service import FamilyCalendar
from familycal.core.clock import today_local
from familycal.core.exceptions import FamilyCalError
from familycal.core.logging_config import configure_logging
from familycal.core.settings import FamilyCalSettings
from familycal.layout.time_grid import DayLayout, TimeGridLayoutEngine

logger = logging.getLogger(__name__)


def _iso_date(value: str) -> date:
    try:
        return date_parser.isoparse(value).date()
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an ISO date: {value!r}") from e


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the familycal CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="familycal",
        description="familycal - recurring event expansion and time-grid layout",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m familycal expand events.json                        # today only
  python -m familycal expand events.json --start 2024-01-01 --days 7 --layout
  cat events.json | python -m familycal expand - --simplified --layout
        """,
    )
    parser.add_argument("--version", action="version", version=f"familycal {__version__}")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--config",
        type=Path,
        metavar="PATH",
        help="YAML config file (default: FAMILYCAL_CONFIG_FILE_PATH or ~/.config/familycal/config.yaml)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    expand = subparsers.add_parser("expand", help="Materialize stored events for a date range")
    expand.add_argument(
        "input",
        help='JSON file with {"series": [...], "exceptions": [...]} rows, or - for stdin',
    )
    expand.add_argument("--start", type=_iso_date, help="First date (default: today)")
    expand.add_argument("--days", type=int, default=1, help="Number of days (default: 1)")
    expand.add_argument("--layout", action="store_true", help="Also print per-day grid layout")
    expand.add_argument(
        "--simplified",
        action="store_true",
        help="Move long timed events to the all-day section in the layout",
    )

    return parser


def _read_document(source: str) -> dict[str, Any]:
    if source == "-":
        raw = sys.stdin.read()
    else:
        raw = Path(source).read_text(encoding="utf-8")
    document = json.loads(raw)
    if isinstance(document, list):
        return {"series": document, "exceptions": []}
    if not isinstance(document, dict):
        raise ValueError("input must be a JSON object or a list of rows")
    return document


def _day_layout_json(layout: DayLayout) -> dict[str, Any]:
    return {
        "all_day": [instance.instance_id for instance in layout.all_day],
        "boxes": [
            {
                "instance_id": box.instance_id,
                "top": box.top,
                "height": box.height,
                "column": box.column,
                "column_count": box.column_count,
                "left_percent": round(box.left_percent, 4),
                "width_percent": round(box.width_percent, 4),
            }
            for box in layout.boxes
        ],
    }


def run_expand(args: argparse.Namespace, settings: FamilyCalSettings) -> dict[str, Any]:
    """Materialize (and optionally lay out) the requested range.

    Returns:
        JSON-serializable result document
    """
    document = _read_document(args.input)
    calendar = FamilyCalendar.from_records(
        document.get("series", []), document.get("exceptions", []), settings=settings
    )

    first = args.start or today_local()
    days = max(args.days, 1)
    last = first + timedelta(days=days - 1)
    instances = calendar.instances(TimeWindow.for_dates(first, last))

    result: dict[str, Any] = {
        "start": first.isoformat(),
        "end": last.isoformat(),
        "instances": [instance.model_dump(mode="json") for instance in instances],
    }

    if args.layout:
        engine = TimeGridLayoutEngine(settings)
        result["layout"] = {
            day.isoformat(): _day_layout_json(engine.layout_day(instances, day, args.simplified))
            for day in (first + timedelta(days=offset) for offset in range(days))
        }

    return result


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the familycal CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    settings_kwargs: dict[str, Any] = {}
    if args.config is not None:
        settings_kwargs["config_file_path"] = args.config
    settings = FamilyCalSettings(**settings_kwargs)
    configure_logging(debug_mode=args.debug or settings.debug, log_level=settings.log_level)

    try:
        result = run_expand(args, settings)
    except (OSError, ValueError, FamilyCalError) as e:
        logger.error("expand failed: %s", e)
        print(f"familycal: error: {e}", file=sys.stderr)
        sys.exit(1)

    json.dump(result, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")
    sys.exit(0)


if __name__ == "__main__":
    main()
