"""Unit tests for UTC date windows."""

from datetime import date, datetime, timedelta, timezone

import pytest

from activity_digest.pipeline.dates import (
    day_window,
    days_in_range,
    format_date_range,
    isoformat_z,
    range_window,
    to_date,
)


class TestWindows:

    def test_day_window(self):
        window = day_window(date(2024, 1, 1))
        assert isoformat_z(window.start) == "2024-01-01T00:00:00.000Z"
        assert isoformat_z(window.end) == "2024-01-01T23:59:59.999Z"

    def test_window_is_inclusive(self):
        window = day_window("2024-01-01")
        assert window.contains(window.start)
        assert window.contains(window.end)
        assert not window.contains(window.end + timedelta(milliseconds=1))
        assert not window.contains(window.start - timedelta(milliseconds=1))

    def test_range_window(self):
        window = range_window("2024-01-01", "2024-01-07")
        assert isoformat_z(window.start) == "2024-01-01T00:00:00.000Z"
        assert isoformat_z(window.end) == "2024-01-07T23:59:59.999Z"

    def test_range_rejects_reversed(self):
        with pytest.raises(ValueError):
            range_window("2024-01-07", "2024-01-01")

    def test_single_day_range_equals_day_window(self):
        assert range_window("2024-01-01", "2024-01-01") == day_window("2024-01-01")


class TestConversions:

    def test_to_date_from_aware_datetime(self):
        moment = datetime(2024, 1, 2, 1, tzinfo=timezone(timedelta(hours=3)))
        assert to_date(moment) == date(2024, 1, 1)

    def test_to_date_invalid(self):
        with pytest.raises(ValueError):
            to_date("yesterday")

    def test_days_in_range(self):
        assert days_in_range("2023-12-31", "2024-01-02") == [
            "2023-12-31", "2024-01-01", "2024-01-02"
        ]

    def test_format_date_range(self):
        assert format_date_range("2024-01-01", "2024-01-01") == "2024-01-01"
        assert format_date_range("2024-01-01", "2024-01-03") == "2024-01-01 to 2024-01-03"

    def test_isoformat_z_converts_offset(self):
        moment = datetime(2024, 1, 1, 12, 0, 0, 5000, tzinfo=timezone(timedelta(hours=2)))
        assert isoformat_z(moment) == "2024-01-01T10:00:00.005Z"
