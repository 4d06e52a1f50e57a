from __future__ import annotations

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from arena.api.errors import (
    APIError,
    api_error_handler,
    http_exception_handler,
    unhandled_error_handler,
    validation_error_handler,
)
from arena.api.middleware import RequestBodyLimitMiddleware, RequestIDMiddleware
from arena.config.load_config import load_app_config
from arena.logging_config import get_logger, setup_logging
from arena.storage.sqlite_store import ArenaStore, persistence_enabled

from .routers.catalog import router as catalog_router
from .routers.health import router as health_router
from .routers.leaderboard import router as leaderboard_router
from .routers.run import router as run_router
from .routers.runs import router as runs_router
from .routers.votes import router as votes_router


logger = get_logger(__name__)


def _cors_origins_from_env() -> list[str]:
    raw = os.getenv("ARENA_CORS_ORIGINS", "").strip()
    if not raw:
        return ["http://localhost:3000"]
    return [o.strip() for o in raw.split(",") if o.strip()]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "no", "n", "off"}:
        return False
    return default


def create_app() -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # noqa: ANN202
        # Fail fast on a broken config file instead of on the first request.
        cfg = load_app_config()
        app.state.schema_version = None
        if persistence_enabled() and _env_bool("ARENA_MIGRATE_ON_STARTUP", True):
            store = ArenaStore()
            try:
                app.state.schema_version = store.schema_version()
            finally:
                store.close()
        logger.info(
            "arena_started",
            providers=[p.id for p in cfg.providers],
            persistence=persistence_enabled(),
            schema_version=app.state.schema_version,
        )
        yield

    app = FastAPI(title="LLM Arena API", version="0.1.0", lifespan=lifespan)

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Last added runs first: CORS wraps everything so error responses carry CORS headers too.
    app.add_middleware(RequestBodyLimitMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins_from_env(),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    app.include_router(health_router, tags=["system"])
    app.include_router(catalog_router, prefix="/api", tags=["catalog"])
    app.include_router(run_router, prefix="/api", tags=["runs"])
    app.include_router(runs_router, prefix="/api", tags=["runs"])
    app.include_router(votes_router, prefix="/api", tags=["votes"])
    app.include_router(leaderboard_router, prefix="/api", tags=["leaderboard"])

    return app


app = create_app()
