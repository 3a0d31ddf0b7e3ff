# Overview: Pytest coverage for the pure recurrence and pause-window predicates.

from datetime import date, datetime, timedelta

import pytest

from doorstep.services.schedule import (
    RECURRENCE_ALTERNATE,
    RECURRENCE_DAILY,
    RECURRENCE_WEEKLY,
    is_delivery_day,
    is_in_pause_window,
    matches_recurrence,
    normalize_recurrence,
    upcoming_delivery_dates,
)

START = date(2024, 1, 1)


class TestRecurrence:
    def test_daily_every_day_from_start(self):
        for offset in range(10):
            assert matches_recurrence(START, START + timedelta(days=offset), RECURRENCE_DAILY)

    def test_alternate_even_offsets_only(self):
        hits = [o for o in range(10) if matches_recurrence(START, START + timedelta(days=o), RECURRENCE_ALTERNATE)]
        assert hits == [0, 2, 4, 6, 8]

    def test_weekly_multiples_of_seven(self):
        hits = [o for o in range(30) if matches_recurrence(START, START + timedelta(days=o), RECURRENCE_WEEKLY)]
        assert hits == [0, 7, 14, 21, 28]

    def test_before_start_never_matches(self):
        assert not matches_recurrence(START, START - timedelta(days=1), RECURRENCE_DAILY)
        assert not matches_recurrence(START, START - timedelta(days=2), RECURRENCE_ALTERNATE)

    def test_unknown_recurrence_never_matches(self):
        assert not matches_recurrence(START, START, "MONTHLY")

    def test_time_of_day_does_not_shift_offset(self):
        """A datetime late in the day is still its calendar date."""
        late_start = datetime(2024, 1, 1, 23, 59)
        early_target = datetime(2024, 1, 3, 0, 1)
        assert matches_recurrence(late_start, early_target, RECURRENCE_ALTERNATE)

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("daily", RECURRENCE_DAILY),
            ("DAILY", RECURRENCE_DAILY),
            ("every-other-day", RECURRENCE_ALTERNATE),
            ("alternate", RECURRENCE_ALTERNATE),
            (" Weekly ", RECURRENCE_WEEKLY),
        ],
    )
    def test_normalize_recurrence(self, raw, expected):
        assert normalize_recurrence(raw) == expected

    def test_normalize_recurrence_rejects_unknown(self):
        with pytest.raises(ValueError):
            normalize_recurrence("fortnightly")


class TestPauseWindow:
    def test_window_is_inclusive(self):
        ps, pe = date(2024, 1, 5), date(2024, 1, 7)
        assert is_in_pause_window(ps, ps, pe)
        assert is_in_pause_window(pe, ps, pe)
        assert not is_in_pause_window(pe + timedelta(days=1), ps, pe)
        assert not is_in_pause_window(ps - timedelta(days=1), ps, pe)

    def test_half_open_window_is_ignored(self):
        assert not is_in_pause_window(date(2024, 1, 5), date(2024, 1, 1), None)
        assert not is_in_pause_window(date(2024, 1, 5), None, date(2024, 1, 9))

    def test_pause_suppresses_recurrence_days_only_inside_window(self):
        ps, pe = date(2024, 1, 3), date(2024, 1, 5)
        days = [
            START + timedelta(days=o)
            for o in range(8)
            if is_delivery_day(START, START + timedelta(days=o), RECURRENCE_DAILY, ps, pe)
        ]
        assert days == [
            date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 6), date(2024, 1, 7), date(2024, 1, 8)
        ]


class TestUpcomingDates:
    def test_alternate_from_later_date_snaps_to_grid(self):
        dates = upcoming_delivery_dates(START, RECURRENCE_ALTERNATE, 3, from_date=date(2024, 1, 4))
        assert dates == [date(2024, 1, 5), date(2024, 1, 7), date(2024, 1, 9)]

    def test_skips_paused_dates(self):
        dates = upcoming_delivery_dates(
            START,
            RECURRENCE_WEEKLY,
            3,
            from_date=START,
            pause_start=date(2024, 1, 6),
            pause_end=date(2024, 1, 10),
        )
        assert dates == [date(2024, 1, 1), date(2024, 1, 15), date(2024, 1, 22)]

    def test_from_date_before_start_begins_at_start(self):
        dates = upcoming_delivery_dates(START, RECURRENCE_DAILY, 2, from_date=date(2023, 12, 1))
        assert dates == [date(2024, 1, 1), date(2024, 1, 2)]

    def test_zero_count(self):
        assert upcoming_delivery_dates(START, RECURRENCE_DAILY, 0) == []
