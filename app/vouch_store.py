"""Vouch persistence and write-failure classification.

The database owns both vouch limits. Failures come back as driver exceptions
carrying a SQLSTATE, which are mapped onto the VouchWriteError hierarchy so
callers never inspect message text.
"""

import logging
from datetime import datetime

import asyncpg

from app.cooldown import MAX_VOUCHES_PER_WINDOW
from app.db import database

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
# Raised by the vouches_sliding_window trigger (see migrations).
SLIDING_WINDOW_VIOLATION = "VW048"


class VouchWriteError(Exception):
    message = "Failed to create vouch"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class DailyLimitError(VouchWriteError):
    message = "You have already vouched for this user today in this game."


class SlidingWindowError(VouchWriteError):
    message = (
        "You have reached the limit: you cannot vouch more than twice "
        "within 48 hours for the same person/game."
    )


class VouchRejectedError(VouchWriteError):
    pass


def classify_write_error(exc: Exception) -> VouchWriteError:
    """Map a database exception to the matching VouchWriteError."""
    sqlstate = getattr(exc, "sqlstate", None)
    if isinstance(exc, asyncpg.exceptions.UniqueViolationError) or sqlstate == UNIQUE_VIOLATION:
        return DailyLimitError()
    if sqlstate == SLIDING_WINDOW_VIOLATION:
        return SlidingWindowError()
    detail = getattr(exc, "message", None) or str(exc)
    return VouchRejectedError(detail or None)


async def fetch_recent_vouch_times(
    voucher_id: int,
    target_id: int,
    game_id: int,
    limit: int = MAX_VOUCHES_PER_WINDOW,
) -> list[datetime]:
    """Creation times of the most recent vouches for a triple, newest first."""
    rows = await database.fetch_all(
        """
        SELECT created_at FROM vouches
        WHERE voucher_id = :voucher_id AND target_id = :target_id AND game_id = :game_id
        ORDER BY created_at DESC, id DESC
        LIMIT :limit
        """,
        {
            "voucher_id": voucher_id,
            "target_id": target_id,
            "game_id": game_id,
            "limit": limit,
        },
    )
    return [row["created_at"] for row in rows]


async def insert_vouch(
    voucher_id: int,
    target_id: int,
    game_id: int,
    vouch_type: str,
    comment: str | None,
) -> dict:
    """Insert a vouch, raising a VouchWriteError subclass on rejection.

    impact_score is filled in by the database from the voucher's reputation.
    """
    try:
        row = await database.fetch_one(
            """
            INSERT INTO vouches (voucher_id, target_id, game_id, vouch_type, comment)
            VALUES (:voucher_id, :target_id, :game_id, :vouch_type, :comment)
            RETURNING id, impact_score, created_at
            """,
            {
                "voucher_id": voucher_id,
                "target_id": target_id,
                "game_id": game_id,
                "vouch_type": vouch_type,
                "comment": comment,
            },
        )
    except asyncpg.PostgresError as e:
        error = classify_write_error(e)
        logger.info(
            "Vouch %s -> %s in game %s rejected: %s",
            voucher_id,
            target_id,
            game_id,
            type(error).__name__,
        )
        raise error from e

    logger.info("Vouch %s created: %s -> %s in game %s", row["id"], voucher_id, target_id, game_id)
    return dict(row)
