"""
Unit tests for monthly period helpers and logging setup.
"""

import logging
from datetime import datetime, timedelta, timezone

from five_lines_story.logging_config import HANDLER_NAME, configure_logging
from five_lines_story.timeutils import month_start, next_month_start, parse_timestamp


class TestMonthBoundaries:
    """Test UTC month helpers."""

    def test_month_start(self):
        moment = datetime(2026, 7, 19, 15, 30, tzinfo=timezone.utc)
        assert month_start(moment) == datetime(2026, 7, 1, tzinfo=timezone.utc)

    def test_next_month_start_wraps_year(self):
        moment = datetime(2026, 12, 31, 23, 59, tzinfo=timezone.utc)
        assert next_month_start(moment) == datetime(2027, 1, 1, tzinfo=timezone.utc)

    def test_other_timezone_converted_to_utc(self):
        """1 Aug 01:00 at UTC+2 is still July in UTC."""
        moment = datetime(2026, 8, 1, 1, 0, tzinfo=timezone(timedelta(hours=2)))
        assert month_start(moment) == datetime(2026, 7, 1, tzinfo=timezone.utc)

    def test_naive_timestamp_read_as_utc(self):
        parsed = parse_timestamp("2026-03-04T05:06:07")
        assert parsed.tzinfo == timezone.utc


class TestConfigureLogging:
    """Test package logger setup."""

    def test_handler_installed_once(self):
        logger = logging.getLogger("five_lines_story")
        configure_logging("info")
        configure_logging("debug")

        handlers = [h for h in logger.handlers if h.get_name() == HANDLER_NAME]
        assert len(handlers) == 1
        assert logger.level == logging.DEBUG
