"""Wall-clock access for familycal.

The calendar works in the family's local wall-clock time (naive datetimes).
``FAMILYCAL_TEST_TIME`` freezes the clock for tests and demos.
"""

from __future__ import annotations

import datetime
import logging
import os

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

TEST_TIME_ENV = "FAMILYCAL_TEST_TIME"


def now_local() -> datetime.datetime:
    """Return the current local wall-clock time as a naive datetime.

    Can be overridden for testing via the FAMILYCAL_TEST_TIME environment variable
    (ISO 8601, e.g. "2024-01-03T09:15:00"). Aware values are converted to local
    time before the tzinfo is dropped.

    Returns:
        Current local time without tzinfo
    """
    test_time = os.environ.get(TEST_TIME_ENV)
    if test_time:
        try:
            dt = date_parser.isoparse(test_time)
        except ValueError as e:
            logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV, test_time, e)
        else:
            if dt.tzinfo is not None:
                dt = dt.astimezone().replace(tzinfo=None)
            return dt

    return datetime.datetime.now()


def today_local() -> datetime.date:
    """Return today's date according to :func:`now_local`."""
    return now_local().date()
