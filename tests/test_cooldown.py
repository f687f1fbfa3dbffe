"""Tests for vouch cooldown computation."""

from datetime import datetime, timedelta, timezone

import pytest

from app.cooldown import (
    VOUCH_WINDOW,
    Advice,
    VouchRecord,
    check_and_advise,
    compute_next_allowed_ms,
    format_duration,
    next_utc_midnight,
    recent_history,
)

HOUR_MS = 3600 * 1000


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "now",
    [utc(2024, 1, 15, 10), utc(2024, 2, 29, 23, 59, 59), utc(1999, 12, 31, 0, 0)],
)
def test_empty_history_is_allowed(now) -> None:
    assert compute_next_allowed_ms(now, []) == 0


def test_next_utc_midnight() -> None:
    assert next_utc_midnight(utc(2024, 1, 15, 10)) == utc(2024, 1, 16)
    assert next_utc_midnight(utc(2024, 1, 15)) == utc(2024, 1, 16)
    assert next_utc_midnight(utc(2024, 2, 28, 23, 59)) == utc(2024, 2, 29)
    assert next_utc_midnight(utc(2024, 12, 31, 12)) == utc(2025, 1, 1)


def test_next_utc_midnight_ignores_local_offset() -> None:
    # 2024-01-15 22:00 at UTC-5 is already 2024-01-16 03:00 UTC
    eastern = timezone(timedelta(hours=-5))
    now = datetime(2024, 1, 15, 22, 0, tzinfo=eastern)
    assert next_utc_midnight(now) == utc(2024, 1, 17)


def test_single_entry_old_vouch_is_allowed() -> None:
    now = utc(2024, 1, 15, 10)
    history = [utc(2024, 1, 14, 9)]
    assert compute_next_allowed_ms(now, history) == 0


def test_single_entry_midnight_wins() -> None:
    now = utc(2024, 1, 15, 10)
    history = [utc(2024, 1, 15, 9)]
    # window releases in 47h, midnight in 14h
    assert compute_next_allowed_ms(now, history) == 14 * HOUR_MS


def test_single_entry_matches_min_of_both_limits() -> None:
    now = utc(2024, 3, 10, 6, 30)
    t0 = utc(2024, 3, 8, 12, 0)
    elapsed = now - t0
    until_window = (VOUCH_WINDOW - elapsed) // timedelta(milliseconds=1)
    until_midnight = (next_utc_midnight(now) - now) // timedelta(milliseconds=1)
    assert compute_next_allowed_ms(now, [t0]) == min(until_window, until_midnight)
    assert compute_next_allowed_ms(now, [t0]) == until_window


def test_two_entries_wait_for_older_to_expire() -> None:
    now = utc(2024, 1, 15, 10)
    history = [utc(2024, 1, 15, 9), utc(2024, 1, 14, 8)]
    assert compute_next_allowed_ms(now, history) == 22 * HOUR_MS


def test_two_entries_independent_of_newest() -> None:
    now = utc(2024, 1, 15, 10)
    older = utc(2024, 1, 14, 8)
    first = compute_next_allowed_ms(now, [utc(2024, 1, 15, 9), older])
    second = compute_next_allowed_ms(now, [utc(2024, 1, 14, 23, 59), older])
    assert first == second


def test_two_entries_ignore_midnight() -> None:
    now = utc(2024, 1, 15, 23)
    history = [utc(2024, 1, 15, 22), utc(2024, 1, 15, 1)]
    # midnight is 1h away but the window holds until 2024-01-17 01:00
    assert compute_next_allowed_ms(now, history) == 26 * HOUR_MS


def test_two_entries_expired_window_is_zero() -> None:
    now = utc(2024, 1, 20)
    history = [utc(2024, 1, 15, 9), utc(2024, 1, 14, 8)]
    assert compute_next_allowed_ms(now, history) == 0


def test_only_first_two_entries_are_used() -> None:
    now = utc(2024, 1, 15, 10)
    history = [utc(2024, 1, 15, 9), utc(2024, 1, 14, 8), utc(2024, 1, 13, 8)]
    assert compute_next_allowed_ms(now, history) == 22 * HOUR_MS


def test_duplicate_timestamps_count_separately() -> None:
    now = utc(2024, 1, 15, 10)
    t = utc(2024, 1, 15, 9)
    assert compute_next_allowed_ms(now, [t, t]) == 47 * HOUR_MS


def test_result_is_never_negative() -> None:
    now = utc(2024, 6, 1)
    for history in ([utc(2020, 1, 1)], [utc(2020, 1, 2), utc(2020, 1, 1)]):
        assert compute_next_allowed_ms(now, history) == 0


def test_naive_datetimes_are_utc() -> None:
    now = datetime(2024, 1, 15, 10)
    history = [datetime(2024, 1, 15, 9), datetime(2024, 1, 14, 8)]
    assert compute_next_allowed_ms(now, history) == 22 * HOUR_MS


def test_is_idempotent() -> None:
    now = utc(2024, 1, 15, 10)
    history = [utc(2024, 1, 15, 9)]
    assert compute_next_allowed_ms(now, history) == compute_next_allowed_ms(now, history)
    assert history == [utc(2024, 1, 15, 9)]


def test_check_and_advise() -> None:
    now = utc(2024, 1, 15, 10)
    assert check_and_advise(now, []) == Advice(allowed=True, wait_ms=0)
    advice = check_and_advise(now, [utc(2024, 1, 15, 9), utc(2024, 1, 14, 8)])
    assert advice == Advice(allowed=False, wait_ms=22 * HOUR_MS)


def test_recent_history_filters_and_orders() -> None:
    records = [
        VouchRecord(1, 2, 7, utc(2024, 1, 13, 8)),
        VouchRecord(1, 2, 7, utc(2024, 1, 15, 9), "negative"),
        VouchRecord(1, 3, 7, utc(2024, 1, 15, 9, 30)),
        VouchRecord(1, 2, 8, utc(2024, 1, 15, 9, 45)),
        VouchRecord(1, 2, 7, utc(2024, 1, 14, 8)),
    ]
    assert recent_history(records, 1, 2, 7) == [utc(2024, 1, 15, 9), utc(2024, 1, 14, 8)]
    assert recent_history(records, 1, 2, 7, limit=5) == [
        utc(2024, 1, 15, 9),
        utc(2024, 1, 14, 8),
        utc(2024, 1, 13, 8),
    ]
    assert recent_history(records, 9, 2, 7) == []


@pytest.mark.parametrize(
    ("ms", "expected"),
    [
        (0, "now"),
        (-5, "now"),
        (999, "0s"),
        (45_000, "45s"),
        (60_000, "1m"),
        (90 * 60 * 1000, "1h 30m"),
        (2 * 86400 * 1000 + 3 * 3600 * 1000, "2d 3h"),
        (86400 * 1000 + 3 * 3600 * 1000 + 20 * 60 * 1000 + 15_000, "1d 3h 20m"),
        (22 * HOUR_MS, "22h"),
    ],
)
def test_format_duration(ms, expected) -> None:
    assert format_duration(ms) == expected
