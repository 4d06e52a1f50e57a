from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Query, Response

from arena.api.errors import APIError
from arena.api.pagination import RunCursor, cursor_from_query, encode_cursor
from arena.config.load_config import load_app_config
from arena.logging_config import get_logger
from arena.storage.sqlite_store import ArenaStore, persistence_enabled


router = APIRouter()
logger = get_logger(__name__)


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(float(ts), tz=timezone.utc).isoformat()


def _opt_float(value: Any) -> float | None:
    return float(value) if value is not None else None


@router.get("/runs")
def list_runs(
    limit: int | None = Query(default=None, ge=1),
    cursor: str | None = Query(default=None),
) -> dict[str, Any]:
    if not persistence_enabled():
        return {"runs": [], "hasMore": False, "nextCursor": None}

    cfg = load_app_config()
    page_size = int(limit) if limit is not None else cfg.limits.runs_list_default_limit
    if page_size > cfg.limits.runs_list_max_limit:
        raise APIError(
            status_code=400,
            code="invalid_argument",
            message=f"limit must be in [1..{cfg.limits.runs_list_max_limit}].",
            details={"limit": page_size},
        )
    cursor_obj = cursor_from_query(cursor)

    try:
        store = ArenaStore()
        try:
            page = store.list_runs_page(
                limit=page_size,
                cursor=cursor_obj.as_key() if cursor_obj is not None else None,
            )
        finally:
            store.close()
    except (sqlite3.Error, OSError) as e:
        logger.error("list_runs_failed", error=str(e))
        raise APIError(status_code=500, code="internal", message="Failed to list runs.") from e

    next_cursor = page.get("next_cursor")
    return {
        "runs": [
            {
                "id": it["run_id"],
                "promptText": it["prompt_text"],
                "createdAt": _iso(it["created_at"]),
                "totalCostUsd": it["total_cost_usd"],
                "modelCount": it["model_count"],
            }
            for it in page["items"]
        ],
        "hasMore": bool(page["has_more"]),
        "nextCursor": (
            encode_cursor(RunCursor(created_at=float(next_cursor[0]), run_id=str(next_cursor[1])))
            if next_cursor is not None
            else None
        ),
    }


@router.get("/runs/{run_id}")
def get_run(run_id: str) -> dict[str, Any]:
    if not persistence_enabled():
        raise APIError(status_code=404, code="not_found", message="Run not found.")

    try:
        store = ArenaStore()
        try:
            row = store.get_run(run_id=run_id)
            if row is None:
                raise APIError(status_code=404, code="not_found", message="Run not found.")
            models = store.list_models_for_run(run_id=run_id)
        finally:
            store.close()
    except (sqlite3.Error, OSError) as e:
        logger.error("get_run_failed", run_id=run_id, error=str(e))
        raise APIError(status_code=500, code="internal", message="Failed to load run.") from e

    return {
        "run": {
            "id": row["run_id"],
            "promptText": row["prompt_text"],
            "createdAt": _iso(row["created_at"]),
            "totalCostUsd": _opt_float(row["total_cost_usd"]),
            "models": [
                {
                    "id": m["model_row_id"],
                    "providerId": m["provider_id"],
                    "providerLabel": m["provider_label"],
                    "modelId": m["model_id"],
                    "modelLabel": m["model_label"],
                    "output": m["output"],
                    "promptTokens": int(m["prompt_tokens"]),
                    "completionTokens": int(m["completion_tokens"]),
                    "totalTokens": int(m["total_tokens"]),
                    "costUsd": _opt_float(m["cost_usd"]),
                    "mocked": bool(m["mocked"]),
                    "latencyMs": int(m["latency_ms"]) if m["latency_ms"] is not None else None,
                }
                for m in models
            ],
        }
    }


@router.delete("/runs/{run_id}", status_code=204)
def delete_run(run_id: str) -> Response:
    if not persistence_enabled():
        raise APIError(status_code=400, code="failed_precondition", message="Database not configured.")

    try:
        store = ArenaStore()
        try:
            deleted = store.delete_run(run_id=run_id)
        finally:
            store.close()
    except (sqlite3.Error, OSError) as e:
        logger.error("delete_run_failed", run_id=run_id, error=str(e))
        raise APIError(status_code=500, code="internal", message="Failed to delete run.") from e

    if not deleted:
        raise APIError(status_code=404, code="not_found", message="Run not found.")
    logger.info("run_deleted", run_id=run_id)
    return Response(status_code=204)
