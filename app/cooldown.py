"""Vouch eligibility and cooldown computation.

Two limits apply to every (voucher, target, game) triple:

- one vouch per UTC calendar date (enforced by a unique index in the database)
- at most two vouches in any rolling 48 hour window (enforced by a trigger)

The database is the only enforcement point. The functions here predict when
the next vouch will be accepted so the API can tell the user how long to wait.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

VOUCH_WINDOW = timedelta(hours=48)
MAX_VOUCHES_PER_WINDOW = 2

_ONE_MS = timedelta(milliseconds=1)


@dataclass(frozen=True)
class VouchRecord:
    voucher_id: int
    target_id: int
    game_id: int
    created_at: datetime
    vouch_type: str = "positive"


@dataclass(frozen=True)
class Advice:
    allowed: bool
    wait_ms: int


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_ms(delta: timedelta) -> int:
    return delta // _ONE_MS


def next_utc_midnight(now: datetime) -> datetime:
    """Start of the UTC calendar day following `now`."""
    now = _as_utc(now)
    midnight = datetime(now.year, now.month, now.day, tzinfo=timezone.utc)
    return midnight + timedelta(days=1)


def compute_next_allowed_ms(now: datetime, history: Sequence[datetime]) -> int:
    """Milliseconds until the next vouch is permitted, 0 if allowed now.

    `history` holds the creation times of the most recent vouches for one
    (voucher, target, game) triple, newest first. Only the first two entries
    are consulted; ordering is the caller's job.

    With a single prior vouch the window release races the next UTC midnight
    and the earlier one wins. With two or more, the wait runs until the older
    of the two most recent vouches leaves the 48 hour window.
    """
    if not history:
        return 0

    now = _as_utc(now)

    if len(history) == 1:
        latest = _as_utc(history[0])
        until_window = max(0, _to_ms(latest + VOUCH_WINDOW - now))
        until_midnight = _to_ms(next_utc_midnight(now) - now)
        return min(until_window, until_midnight)

    older = _as_utc(history[MAX_VOUCHES_PER_WINDOW - 1])
    return max(0, _to_ms(older + VOUCH_WINDOW - now))


def check_and_advise(now: datetime, history: Sequence[datetime]) -> Advice:
    wait_ms = compute_next_allowed_ms(now, history)
    return Advice(allowed=wait_ms == 0, wait_ms=wait_ms)


def recent_history(
    records: Iterable[VouchRecord],
    voucher_id: int,
    target_id: int,
    game_id: int,
    limit: int = MAX_VOUCHES_PER_WINDOW,
) -> list[datetime]:
    """Creation times for one triple, newest first, truncated to `limit`.

    Records sharing a timestamp keep their original relative order.
    """
    matching = [
        _as_utc(r.created_at)
        for r in records
        if r.voucher_id == voucher_id and r.target_id == target_id and r.game_id == game_id
    ]
    return sorted(matching, reverse=True)[:limit]


def format_duration(ms: int) -> str:
    """Render a wait like "1d 3h 20m", "45s" or "now"."""
    if ms <= 0:
        return "now"
    seconds = int(ms // 1000)
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if not parts:
        return f"{seconds}s"
    return " ".join(parts)
