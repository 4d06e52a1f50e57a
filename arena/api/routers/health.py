from __future__ import annotations

import importlib.metadata
import time
from typing import Any

from fastapi import APIRouter

from arena.storage.sqlite_store import SCHEMA_VERSION, persistence_enabled


router = APIRouter()


def _pkg_version(name: str) -> str | None:
    try:
        return str(importlib.metadata.version(name))
    except importlib.metadata.PackageNotFoundError:
        return None


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/api/version")
def version() -> dict[str, Any]:
    return {
        "service": "llm-arena",
        "schemaVersion": int(SCHEMA_VERSION),
        "persistence": persistence_enabled(),
        "deps": {
            "fastapi": _pkg_version("fastapi"),
            "uvicorn": _pkg_version("uvicorn"),
            "openai": _pkg_version("openai"),
            "structlog": _pkg_version("structlog"),
        },
        "ts": time.time(),
    }
