from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from arena.config.load_config import load_app_config


router = APIRouter()


@router.get("/providers")
def list_providers() -> dict[str, Any]:
    """Provider/model catalog for the model picker.

    `hasServerKey` tells the UI whether a run will go live without a user-supplied key.
    Key values themselves are never returned.
    """
    cfg = load_app_config()
    return {
        "providers": [
            {
                "id": p.id,
                "label": p.label,
                "kind": p.kind,
                "hasServerKey": p.server_api_key() is not None,
                "per1kUsd": cfg.per_1k_usd(p.id),
                "models": [{"id": m.id, "label": m.label} for m in p.models],
            }
            for p in cfg.providers
        ]
    }
