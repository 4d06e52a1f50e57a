from __future__ import annotations

import os
import sqlite3
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from arena.runtime.fanout import ModelResult


SCHEMA_VERSION = 2


def _utc_ts() -> float:
    return time.time()


def _new_uuid() -> str:
    return str(uuid.uuid4())


def default_db_path() -> str:
    return os.getenv("ARENA_SQLITE_PATH", "data/arena.db")


def persistence_enabled() -> bool:
    """False when ARENA_PERSISTENCE is switched off: the API then runs without a store."""
    raw = os.getenv("ARENA_PERSISTENCE")
    if raw is None:
        return True
    return raw.strip().lower() not in {"0", "false", "no", "n", "off"}


@dataclass(frozen=True)
class RunRecord:
    run_id: str
    created_at: float
    prompt_text: str
    total_cost_usd: float | None


@dataclass(frozen=True)
class VoteRecord:
    vote_id: str
    run_id: str
    model_row_id: str
    user_id: str | None
    created_at: float


class ArenaStore:
    """SQLite-backed store for prompt runs, per-model outputs and votes.

    One connection per instance; open it per request/command and close it when done.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        self.db_path = Path(db_path or default_db_path()).expanduser().resolve()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON;")
        self._conn.execute("PRAGMA journal_mode = WAL;")
        self._conn.execute("PRAGMA synchronous = NORMAL;")

        self._init_schema()

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self, *, mode: str = "IMMEDIATE") -> Iterable[None]:
        """Explicit transaction; commits on success and rolls back on any exception."""
        self._conn.execute(f"BEGIN {mode};")
        try:
            yield
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def _init_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
              key TEXT PRIMARY KEY,
              value TEXT NOT NULL
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS prompt_runs (
              run_id TEXT PRIMARY KEY,
              created_at REAL NOT NULL,
              prompt_text TEXT NOT NULL,
              total_cost_usd REAL
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS prompt_run_models (
              model_row_id TEXT PRIMARY KEY,
              run_id TEXT NOT NULL,
              position INTEGER NOT NULL,
              created_at REAL NOT NULL,
              provider_id TEXT NOT NULL,
              provider_label TEXT NOT NULL,
              model_id TEXT NOT NULL,
              model_label TEXT NOT NULL,
              output TEXT NOT NULL,
              prompt_tokens INTEGER NOT NULL,
              completion_tokens INTEGER NOT NULL,
              total_tokens INTEGER NOT NULL,
              cost_usd REAL,
              mocked INTEGER NOT NULL DEFAULT 0,
              latency_ms INTEGER,
              FOREIGN KEY (run_id) REFERENCES prompt_runs(run_id) ON DELETE CASCADE
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS votes (
              vote_id TEXT PRIMARY KEY,
              run_id TEXT NOT NULL,
              model_row_id TEXT NOT NULL,
              user_id TEXT,
              created_at REAL NOT NULL,
              FOREIGN KEY (run_id) REFERENCES prompt_runs(run_id) ON DELETE CASCADE,
              FOREIGN KEY (model_row_id) REFERENCES prompt_run_models(model_row_id) ON DELETE CASCADE
            );
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_prompt_runs_created ON prompt_runs(created_at, run_id);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_run_models_run ON prompt_run_models(run_id, position);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_votes_model_row ON votes(model_row_id);")

        # New databases start at schema_version=1 (base tables) and migrate forward.
        cur.execute(
            "INSERT OR IGNORE INTO meta(key, value) VALUES(?, ?);",
            ("schema_version", "1"),
        )
        self._conn.commit()

        self._migrate_if_needed()

    def _get_schema_version(self) -> int:
        row = self._conn.execute("SELECT value FROM meta WHERE key = ?;", ("schema_version",)).fetchone()
        if row is None:
            return 0
        try:
            return int(row["value"])
        except (TypeError, ValueError):
            return 0

    def _set_schema_version(self, version: int) -> None:
        self._conn.execute(
            "INSERT INTO meta(key, value) VALUES(?, ?) ON CONFLICT(key) DO UPDATE SET value = excluded.value;",
            ("schema_version", str(int(version))),
        )

    def schema_version(self) -> int:
        return self._get_schema_version()

    def _migrate_if_needed(self) -> None:
        current = self._get_schema_version()
        target = int(SCHEMA_VERSION)
        if current == target:
            return
        if current > target:
            raise RuntimeError(f"DB schema_version={current} is newer than code expects ({target}).")

        cur = self._conn.cursor()
        cur.execute("BEGIN;")
        try:
            while current < target:
                if current == 1:
                    self._migrate_1_to_2(cur)
                    current = 2
                    self._set_schema_version(current)
                else:
                    raise RuntimeError(f"Missing migration step for schema_version={current} -> {current+1}")
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def _migrate_1_to_2(self, cur: sqlite3.Cursor) -> None:
        # Idempotency table for POST /run (client retries must not re-bill every provider).
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS idempotency_keys (
              key TEXT PRIMARY KEY,
              created_at REAL NOT NULL,
              request_hash TEXT NOT NULL,
              response_json TEXT NOT NULL
            );
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_votes_run ON votes(run_id);")

    # --- Idempotency
    def get_idempotency(self, key: str) -> sqlite3.Row | None:
        return self._conn.execute(
            "SELECT key, created_at, request_hash, response_json FROM idempotency_keys WHERE key = ? LIMIT 1;",
            (key,),
        ).fetchone()

    def put_idempotency(
        self, *, key: str, request_hash: str, response_json: str, commit: bool = True
    ) -> None:
        self._conn.execute(
            """
            INSERT INTO idempotency_keys(key, created_at, request_hash, response_json)
            VALUES(?, ?, ?, ?)
            ON CONFLICT(key) DO NOTHING;
            """,
            (key, _utc_ts(), request_hash, response_json),
        )
        if commit:
            self._conn.commit()

    # --- Runs
    def create_run(
        self,
        *,
        prompt_text: str,
        total_cost_usd: float | None,
        run_id: str | None = None,
        commit: bool = True,
    ) -> RunRecord:
        run_id = run_id or _new_uuid()
        created_at = _utc_ts()
        # A zero total is stored as "unknown", matching rows written before costs existed.
        stored_total = float(total_cost_usd) if total_cost_usd else None
        self._conn.execute(
            "INSERT INTO prompt_runs(run_id, created_at, prompt_text, total_cost_usd) VALUES(?, ?, ?, ?);",
            (run_id, created_at, prompt_text, stored_total),
        )
        if commit:
            self._conn.commit()
        return RunRecord(run_id=run_id, created_at=created_at, prompt_text=prompt_text, total_cost_usd=stored_total)

    def add_model_row(self, *, run_id: str, position: int, result: ModelResult, commit: bool = True) -> str:
        model_row_id = _new_uuid()
        self._conn.execute(
            """
            INSERT INTO prompt_run_models(
              model_row_id, run_id, position, created_at,
              provider_id, provider_label, model_id, model_label, output,
              prompt_tokens, completion_tokens, total_tokens, cost_usd, mocked, latency_ms
            ) VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                model_row_id,
                run_id,
                int(position),
                _utc_ts(),
                result.provider_id,
                result.provider_label,
                result.model_id,
                result.model_label,
                result.output,
                int(result.prompt_tokens),
                int(result.completion_tokens),
                int(result.total_tokens),
                result.cost_usd,
                1 if result.mocked else 0,
                int(result.latency_ms),
            ),
        )
        if commit:
            self._conn.commit()
        return model_row_id

    def insert_run(
        self,
        *,
        prompt_text: str,
        results: list[ModelResult],
        total_cost_usd: float | None,
        run_id: str | None = None,
    ) -> tuple[RunRecord, list[str]]:
        """Insert the run and one row per model result without committing.

        Call inside `transaction()`; `save_run` is the self-committing variant.
        """
        run = self.create_run(prompt_text=prompt_text, total_cost_usd=total_cost_usd, run_id=run_id, commit=False)
        row_ids = [
            self.add_model_row(run_id=run.run_id, position=i, result=r, commit=False)
            for i, r in enumerate(results)
        ]
        return run, row_ids

    def save_run(
        self,
        *,
        prompt_text: str,
        results: list[ModelResult],
        total_cost_usd: float | None,
        run_id: str | None = None,
    ) -> tuple[RunRecord, list[str]]:
        """Insert the run and one row per model result in a single transaction."""
        with self.transaction(mode="IMMEDIATE"):
            return self.insert_run(
                prompt_text=prompt_text, results=results, total_cost_usd=total_cost_usd, run_id=run_id
            )

    def get_run(self, *, run_id: str) -> sqlite3.Row | None:
        return self._conn.execute(
            """
            SELECT run_id, created_at, prompt_text, total_cost_usd
            FROM prompt_runs
            WHERE run_id = ?
            LIMIT 1;
            """,
            (run_id,),
        ).fetchone()

    def list_models_for_run(self, *, run_id: str) -> list[sqlite3.Row]:
        return self._conn.execute(
            """
            SELECT
              model_row_id, run_id, position, created_at,
              provider_id, provider_label, model_id, model_label, output,
              prompt_tokens, completion_tokens, total_tokens, cost_usd, mocked, latency_ms
            FROM prompt_run_models
            WHERE run_id = ?
            ORDER BY position ASC, created_at ASC;
            """,
            (run_id,),
        ).fetchall()

    def list_runs_page(self, *, limit: int, cursor: tuple[float, str] | None) -> dict[str, Any]:
        where = ["1=1"]
        params: list[Any] = []

        if cursor is not None:
            created_at, run_id = cursor
            # Newest-first pagination (DESC).
            where.append("(r.created_at < ? OR (r.created_at = ? AND r.run_id < ?))")
            params.extend([float(created_at), float(created_at), str(run_id)])

        where_sql = " AND ".join(where)
        fetch_n = int(limit) + 1

        rows = self._conn.execute(
            f"""
            SELECT
              r.run_id, r.created_at, r.prompt_text, r.total_cost_usd,
              COUNT(m.model_row_id) AS model_count
            FROM prompt_runs r
            LEFT JOIN prompt_run_models m ON m.run_id = r.run_id
            WHERE {where_sql}
            GROUP BY r.run_id
            ORDER BY r.created_at DESC, r.run_id DESC
            LIMIT ?;
            """,
            (*params, fetch_n),
        ).fetchall()

        has_more = len(rows) > limit
        if has_more:
            rows = rows[:limit]

        items = [
            {
                "run_id": r["run_id"],
                "created_at": float(r["created_at"]),
                "prompt_text": r["prompt_text"],
                "total_cost_usd": float(r["total_cost_usd"]) if r["total_cost_usd"] is not None else None,
                "model_count": int(r["model_count"]),
            }
            for r in rows
        ]

        next_cursor: tuple[float, str] | None = None
        if has_more and items:
            last = items[-1]
            next_cursor = (float(last["created_at"]), str(last["run_id"]))

        return {"items": items, "has_more": has_more, "next_cursor": next_cursor}

    def delete_run(self, *, run_id: str) -> bool:
        cur = self._conn.execute("DELETE FROM prompt_runs WHERE run_id = ?;", (run_id,))
        self._conn.commit()
        return cur.rowcount > 0

    def count_runs(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS n FROM prompt_runs;").fetchone()
        return int(row["n"]) if row is not None else 0

    # --- Votes
    def get_model_row(self, *, model_row_id: str) -> sqlite3.Row | None:
        return self._conn.execute(
            "SELECT model_row_id, run_id FROM prompt_run_models WHERE model_row_id = ? LIMIT 1;",
            (model_row_id,),
        ).fetchone()

    def record_vote(self, *, run_id: str, model_row_id: str, user_id: str | None = None) -> VoteRecord:
        vote_id = _new_uuid()
        created_at = _utc_ts()
        self._conn.execute(
            "INSERT INTO votes(vote_id, run_id, model_row_id, user_id, created_at) VALUES(?, ?, ?, ?, ?);",
            (vote_id, run_id, model_row_id, user_id, created_at),
        )
        self._conn.commit()
        return VoteRecord(
            vote_id=vote_id,
            run_id=run_id,
            model_row_id=model_row_id,
            user_id=user_id,
            created_at=created_at,
        )

    def count_votes(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS n FROM votes;").fetchone()
        return int(row["n"]) if row is not None else 0

    # --- Leaderboard
    def leaderboard(self) -> list[dict[str, Any]]:
        """Wins, distinct runs and win rate per (model_label, provider_label)."""
        rows = self._conn.execute(
            """
            SELECT
              prm.model_label,
              prm.provider_label,
              COUNT(v.vote_id) AS wins,
              COUNT(DISTINCT prm.run_id) AS runs,
              CASE
                WHEN COUNT(DISTINCT prm.run_id) = 0 THEN 0.0
                ELSE CAST(COUNT(v.vote_id) AS REAL) / COUNT(DISTINCT prm.run_id)
              END AS win_rate
            FROM prompt_run_models prm
            LEFT JOIN votes v ON v.model_row_id = prm.model_row_id
            GROUP BY prm.model_label, prm.provider_label
            ORDER BY wins DESC, runs DESC, prm.model_label ASC, prm.provider_label ASC;
            """
        ).fetchall()
        return [
            {
                "model_label": r["model_label"],
                "provider_label": r["provider_label"],
                "wins": int(r["wins"]),
                "runs": int(r["runs"]),
                "win_rate": float(r["win_rate"]),
            }
            for r in rows
        ]
