from __future__ import annotations

import hashlib
import json
import sqlite3
import uuid
from typing import Any

from fastapi import APIRouter, Header
from pydantic import BaseModel, ConfigDict, Field

from arena.api.errors import APIError
from arena.config.load_config import load_app_config
from arena.logging_config import bind_run_id, get_logger
from arena.runtime.fanout import ModelResult, ModelSelection, RunOutcome, execute_prompt
from arena.storage.sqlite_store import ArenaStore, persistence_enabled


router = APIRouter()
logger = get_logger(__name__)


class ModelSelectionInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    provider_id: str = Field(alias="providerId", min_length=1)
    model_id: str = Field(alias="modelId", min_length=1)
    api_key: str | None = Field(default=None, alias="apiKey")


class CreateRunRequest(BaseModel):
    prompt: str = Field(min_length=1)
    models: list[ModelSelectionInput] = Field(min_length=1)


def _result_payload(r: ModelResult, model_row_id: str) -> dict[str, Any]:
    return {
        "providerId": r.provider_id,
        "providerLabel": r.provider_label,
        "modelId": r.model_id,
        "modelLabel": r.model_label,
        "modelRowId": model_row_id,
        "output": r.output,
        "mocked": r.mocked,
        "latencyMs": r.latency_ms,
        "usage": {
            "promptTokens": r.prompt_tokens,
            "completionTokens": r.completion_tokens,
            "totalTokens": r.total_tokens,
            "costUsd": r.cost_usd,
        },
    }


def _run_response(run_id: str, outcome: RunOutcome, model_row_ids: list[str]) -> dict[str, Any]:
    return {
        "runId": run_id,
        "results": [_result_payload(r, row_id) for r, row_id in zip(outcome.results, model_row_ids)],
        "totalCostUsd": outcome.total_cost_usd,
    }


def _request_hash(body: CreateRunRequest) -> str:
    req_obj = body.model_dump(mode="json", by_alias=True)
    req_json = json.dumps(req_obj, ensure_ascii=False, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(req_json.encode("utf-8")).hexdigest()


def _replay(existing: sqlite3.Row, request_hash: str) -> dict[str, Any]:
    if str(existing["request_hash"]) != request_hash:
        raise APIError(
            status_code=409,
            code="conflict",
            message="Idempotency-Key was already used with a different request body.",
        )
    return json.loads(str(existing["response_json"]))


def _lookup_idempotent(key: str, request_hash: str) -> dict[str, Any] | None:
    store = ArenaStore()
    try:
        existing = store.get_idempotency(key)
    finally:
        store.close()
    if existing is None:
        return None
    return _replay(existing, request_hash)


def _persist_run(
    *,
    run_id: str,
    prompt: str,
    outcome: RunOutcome,
    idempotency_key: str | None,
    request_hash: str,
) -> dict[str, Any]:
    store = ArenaStore()
    try:
        with store.transaction(mode="IMMEDIATE"):
            if idempotency_key:
                # A concurrent retry may have finished first.
                existing = store.get_idempotency(idempotency_key)
                if existing is not None:
                    return _replay(existing, request_hash)

            _run, row_ids = store.insert_run(
                prompt_text=prompt,
                results=outcome.results,
                total_cost_usd=outcome.total_cost_usd,
                run_id=run_id,
            )
            response = _run_response(run_id, outcome, row_ids)

            if idempotency_key:
                store.put_idempotency(
                    key=idempotency_key,
                    request_hash=request_hash,
                    response_json=json.dumps(response, ensure_ascii=False, separators=(",", ":")),
                    commit=False,
                )
            return response
    finally:
        store.close()


@router.post("/run")
def create_run(
    body: CreateRunRequest,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> dict[str, Any]:
    cfg = load_app_config()
    if len(body.models) > cfg.limits.max_models_per_run:
        raise APIError(
            status_code=400,
            code="invalid_argument",
            message=f"models must contain between 1 and {cfg.limits.max_models_per_run} entries.",
            details={"models": len(body.models)},
        )
    if len(body.prompt) > cfg.limits.max_prompt_chars:
        raise APIError(
            status_code=400,
            code="invalid_argument",
            message=f"prompt must be at most {cfg.limits.max_prompt_chars} characters.",
            details={"prompt_chars": len(body.prompt)},
        )

    persist = persistence_enabled()
    key = (idempotency_key or "").strip() or None
    request_hash = _request_hash(body)

    if persist and key:
        try:
            replay = _lookup_idempotent(key, request_hash)
        except (sqlite3.Error, OSError) as e:
            logger.warning("idempotency_lookup_failed", error=str(e))
            replay = None
        if replay is not None:
            return replay

    run_id = str(uuid.uuid4())
    bind_run_id(run_id)

    outcome = execute_prompt(
        body.prompt,
        [ModelSelection(provider_id=m.provider_id, model_id=m.model_id, api_key=m.api_key) for m in body.models],
        config=cfg,
    )

    # Unpersisted results carry an empty modelRowId; the UI disables voting for them.
    response = _run_response(run_id, outcome, [""] * len(outcome.results))
    if not persist:
        return response

    try:
        response = _persist_run(
            run_id=run_id,
            prompt=body.prompt,
            outcome=outcome,
            idempotency_key=key,
            request_hash=request_hash,
        )
    except (sqlite3.Error, OSError) as e:
        logger.error("run_persist_failed", error=str(e))
        return response

    logger.info("run_created", models=len(outcome.results), total_cost_usd=outcome.total_cost_usd)
    return response
