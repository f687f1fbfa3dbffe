from fastapi import APIRouter

from app.db import database

router = APIRouter(prefix="/api", tags=["games"])


@router.get("/games")
async def list_games() -> list[dict]:
    rows = await database.fetch_all("SELECT id, name FROM games ORDER BY name")
    return [{"id": r["id"], "name": r["name"]} for r in rows]


@router.get("/stats")
async def site_stats() -> dict:
    """Total users and vouches."""
    row = await database.fetch_one(
        """
        SELECT (SELECT COUNT(*) FROM users) AS total_users,
               (SELECT COUNT(*) FROM vouches) AS total_vouches
        """
    )
    return {"total_users": row["total_users"], "total_vouches": row["total_vouches"]}
