#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from arena.storage.sqlite_store import ArenaStore  # noqa: E402


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Delete a stored prompt run (its model outputs and votes go with it).")
    p.add_argument("--run-id", required=True, help="Run id (uuid).")
    p.add_argument("--db-path", default="", help="SQLite path (default: env ARENA_SQLITE_PATH or data/arena.db).")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    store = ArenaStore(args.db_path or None)
    try:
        if not store.delete_run(run_id=str(args.run_id)):
            print(f"run not found: {args.run_id}", file=sys.stderr)
            return 1
        print(args.run_id)
        return 0
    finally:
        store.close()


if __name__ == "__main__":
    raise SystemExit(main())
