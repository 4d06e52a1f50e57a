from __future__ import annotations

import sqlite3
from typing import Any

from fastapi import APIRouter

from arena.api.errors import APIError
from arena.logging_config import get_logger
from arena.storage.sqlite_store import ArenaStore, persistence_enabled


router = APIRouter()
logger = get_logger(__name__)


@router.get("/leaderboard")
def get_leaderboard() -> dict[str, Any]:
    if not persistence_enabled():
        return {"rows": []}

    try:
        store = ArenaStore()
        try:
            rows = store.leaderboard()
        finally:
            store.close()
    except (sqlite3.Error, OSError) as e:
        logger.error("leaderboard_failed", error=str(e))
        raise APIError(status_code=500, code="internal", message="Leaderboard unavailable.") from e

    return {
        "rows": [
            {
                "modelLabel": r["model_label"],
                "providerLabel": r["provider_label"],
                "wins": r["wins"],
                "runs": r["runs"],
                "winRate": r["win_rate"],
            }
            for r in rows
        ]
    }
