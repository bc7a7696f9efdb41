from datetime import datetime, timedelta

import pytz

from app.utils.datetime_utils import (
    ensure_utc,
    format_time,
    is_after_cutoff,
    local_date,
    minutes_to_hours,
    round_half_up,
    round_minutes,
)

from conftest import taipei


def test_round_half_up_rounds_halves_away_from_even():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(0.125, 2) == 0.13
    assert round_half_up(3.7166, 1) == 3.7


def test_round_minutes():
    assert round_minutes(timedelta(seconds=89)) == 1
    assert round_minutes(timedelta(seconds=90)) == 2
    assert round_minutes(timedelta(hours=4, minutes=30)) == 270


def test_minutes_to_hours():
    assert minutes_to_hours(223) == 3.7
    assert minutes_to_hours(240) == 4.0
    assert minutes_to_hours(-30) == -0.5


def test_ensure_utc_treats_naive_values_as_utc():
    naive = datetime(2026, 3, 2, 1, 0)

    assert ensure_utc(naive) == pytz.UTC.localize(naive)
    assert ensure_utc(taipei(2026, 3, 2, 9, 0)).hour == 1
    assert ensure_utc(None) is None


def test_local_date_uses_reference_timezone():
    # 2026-03-02 23:30 UTC is already 03-03 in Taipei
    late_utc = pytz.UTC.localize(datetime(2026, 3, 2, 23, 30))

    assert local_date(late_utc, "Asia/Taipei").isoformat() == "2026-03-03"
    assert local_date(late_utc, "UTC").isoformat() == "2026-03-02"


def test_is_after_cutoff():
    assert not is_after_cutoff(taipei(2026, 3, 2, 9, 15, 59), 9, 15, "Asia/Taipei")
    assert is_after_cutoff(taipei(2026, 3, 2, 9, 16), 9, 15, "Asia/Taipei")
    assert is_after_cutoff(taipei(2026, 3, 2, 10, 0), 9, 15, "Asia/Taipei")


def test_format_time_in_reference_timezone():
    assert format_time(pytz.UTC.localize(datetime(2026, 3, 2, 1, 20)), "Asia/Taipei") == "09:20"
