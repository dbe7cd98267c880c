"""Tests for dispatch clock helpers."""

from datetime import date

from lastmile.utils.clock import local_now, next_working_day


def test_local_now_is_naive():
    now = local_now()
    assert now.tzinfo is None
    assert now.microsecond == 0


def test_next_working_day_weekday():
    assert next_working_day(date(2024, 3, 14)) == date(2024, 3, 15)


def test_next_working_day_skips_sunday():
    assert next_working_day(date(2024, 3, 16)) == date(2024, 3, 18)
