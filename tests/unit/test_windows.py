"""Unit tests for calendar-month windowing."""

from datetime import date, datetime, timezone

import pytest

from veg_monitor.sentinel2.windows import (
    MonthInterval,
    add_months,
    floor_to_month,
    last_full_month,
    month_interval,
    month_label,
    month_window,
    parse_month_label,
)


class TestMonthArithmetic:
    """Tests for floor_to_month() and add_months()."""

    def test_floor_truncates_to_first_day(self):
        assert floor_to_month(date(2025, 11, 30)) == date(2025, 11, 1)

    def test_floor_accepts_datetime(self):
        moment = datetime(2025, 3, 31, 23, 59, tzinfo=timezone.utc)
        assert floor_to_month(moment) == date(2025, 3, 1)

    def test_add_months_crosses_year_forward(self):
        assert add_months(date(2025, 11, 1), 3) == date(2026, 2, 1)

    def test_add_months_crosses_year_backward(self):
        assert add_months(date(2025, 2, 1), -3) == date(2024, 11, 1)

    def test_add_months_truncates_day(self):
        assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 1)


class TestLastFullMonth:
    """Tests for last_full_month()."""

    @pytest.mark.parametrize("day", [1, 5, 15, 30])
    def test_excludes_current_month_regardless_of_day(self, day):
        assert last_full_month(date(2025, 11, day)) == date(2025, 10, 1)

    def test_january_rolls_back_to_december(self):
        assert last_full_month(date(2026, 1, 10)) == date(2025, 12, 1)


class TestMonthWindow:
    """Tests for month_window()."""

    def test_reference_scenario(self):
        """2025-11-05 with three months covers August to October."""
        assert month_window(date(2025, 11, 5), 3) == [
            date(2025, 8, 1),
            date(2025, 9, 1),
            date(2025, 10, 1),
        ]

    def test_zero_months_is_empty(self):
        assert month_window(date(2025, 11, 5), 0) == []

    def test_single_month_is_last_full_month(self):
        assert month_window(date(2025, 11, 5), 1) == [date(2025, 10, 1)]

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            month_window(date(2025, 11, 5), -1)

    @pytest.mark.parametrize("count", [2, 12, 18, 30])
    @pytest.mark.parametrize(
        "now",
        [date(2025, 1, 1), date(2024, 2, 29), datetime(2025, 12, 31, 23, 59)],
    )
    def test_window_is_contiguous_and_before_current_month(self, now, count):
        window = month_window(now, count)

        assert len(window) == count
        assert all(start.day == 1 for start in window)
        assert window[-1] < floor_to_month(now)
        for previous, current in zip(window, window[1:]):
            assert add_months(previous, 1) == current

    def test_eighteen_month_window_spans_two_years(self):
        window = month_window(date(2025, 11, 5), 18)
        assert window[0] == date(2024, 5, 1)
        assert window[-1] == date(2025, 10, 1)


class TestMonthInterval:
    """Tests for month_interval() and its STAC datetime range."""

    def test_half_open_bounds(self):
        interval = month_interval(date(2024, 12, 17))
        assert interval == MonthInterval(start=date(2024, 12, 1), end=date(2025, 1, 1))

    def test_stac_datetime_covers_last_day(self):
        interval = month_interval(date(2024, 2, 1))
        assert interval.stac_datetime() == "2024-02-01T00:00:00Z/2024-02-29T23:59:59.999Z"


class TestMonthLabels:
    """Tests for month_label() and parse_month_label()."""

    def test_label_format(self):
        assert month_label(date(2025, 6, 1)) == "2025-06"

    def test_parse_label(self):
        assert parse_month_label("2024-10") == date(2024, 10, 1)

    def test_parse_round_trip(self):
        assert month_label(parse_month_label("2025-02")) == "2025-02"

    @pytest.mark.parametrize("label", ["2024-13", "2024/10", "Oct 2024", ""])
    def test_parse_rejects_invalid(self, label):
        with pytest.raises(ValueError, match="expected YYYY-MM"):
            parse_month_label(label)
