from __future__ import annotations

import sqlite3
import uuid
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from arena.api.errors import APIError
from arena.logging_config import get_logger
from arena.storage.sqlite_store import ArenaStore, persistence_enabled


router = APIRouter()
logger = get_logger(__name__)


class VoteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    run_id: uuid.UUID = Field(alias="runId")
    model_row_id: uuid.UUID = Field(alias="modelRowId")
    user_id: uuid.UUID | None = Field(default=None, alias="userId")


@router.post("/vote", status_code=201)
def create_vote(body: VoteRequest) -> dict[str, Any]:
    # Without a store the UI flow still succeeds; nothing is recorded.
    if not persistence_enabled():
        return {"ok": True, "skippedPersistence": True}

    run_id = str(body.run_id)
    model_row_id = str(body.model_row_id)
    user_id = str(body.user_id) if body.user_id is not None else None

    try:
        store = ArenaStore()
        try:
            row = store.get_model_row(model_row_id=model_row_id)
            if row is None or str(row["run_id"]) != run_id:
                raise APIError(
                    status_code=400,
                    code="invalid_argument",
                    message="Invalid run/model combination.",
                    details={"runId": run_id, "modelRowId": model_row_id},
                )
            vote = store.record_vote(run_id=run_id, model_row_id=model_row_id, user_id=user_id)
        finally:
            store.close()
    except (sqlite3.Error, OSError) as e:
        logger.error("vote_failed", run_id=run_id, error=str(e))
        raise APIError(status_code=500, code="internal", message="Failed to record vote.") from e

    logger.info("vote_recorded", run_id=run_id, model_row_id=model_row_id, vote_id=vote.vote_id)
    return {"ok": True, "voteId": vote.vote_id}
