from __future__ import annotations

import argparse
import json
import sqlite3
import sys

from arena.config.load_config import load_app_config
from arena.logging_config import get_logger, setup_logging
from arena.runtime.fanout import ModelSelection, RunOutcome, execute_prompt
from arena.storage.sqlite_store import ArenaStore, persistence_enabled


logger = get_logger(__name__)


def _parse_selection(raw: str) -> ModelSelection:
    provider_id, sep, model_id = raw.partition(":")
    if not sep or not provider_id.strip() or not model_id.strip():
        raise argparse.ArgumentTypeError(f"expected PROVIDER:MODEL, got {raw!r}")
    return ModelSelection(provider_id=provider_id.strip(), model_id=model_id.strip())


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send one prompt to several LLMs and compare the answers.")
    parser.add_argument("--prompt", required=True, help="Prompt text, or '-' to read it from stdin.")
    parser.add_argument(
        "--model",
        dest="models",
        action="append",
        type=_parse_selection,
        required=True,
        help="PROVIDER:MODEL to query (repeatable), e.g. openai:gpt-4o.",
    )
    parser.add_argument(
        "--db-path",
        default="",
        help="SQLite path (default: env ARENA_SQLITE_PATH or data/arena.db).",
    )
    parser.add_argument("--no-persist", action="store_true", help="Do not store the run.")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON.")
    return parser.parse_args(argv)


def _print_summary(run_id: str | None, outcome: RunOutcome) -> None:
    for r in outcome.results:
        source = "mock" if r.mocked else "live"
        cost = f"${r.cost_usd:.5f}" if r.cost_usd is not None else "n/a"
        print(f"=== {r.provider_label} / {r.model_label} ({source}, {r.total_tokens} tokens, {cost}, {r.latency_ms} ms)")
        print(r.output)
        print()
    print(f"total cost: ${outcome.total_cost_usd:.5f}")
    if run_id:
        print(f"run id: {run_id}")


def _save(db_path: str | None, prompt: str, outcome: RunOutcome) -> tuple[str, list[str]]:
    store = ArenaStore(db_path)
    try:
        run, row_ids = store.save_run(
            prompt_text=prompt,
            results=outcome.results,
            total_cost_usd=outcome.total_cost_usd,
        )
    finally:
        store.close()
    return run.run_id, row_ids


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    setup_logging()

    prompt = sys.stdin.read() if args.prompt == "-" else args.prompt
    if not prompt.strip():
        print("prompt must not be empty", file=sys.stderr)
        return 2

    cfg = load_app_config()
    if len(args.models) > cfg.limits.max_models_per_run:
        print(f"at most {cfg.limits.max_models_per_run} models per run", file=sys.stderr)
        return 2

    outcome = execute_prompt(prompt, list(args.models), config=cfg)

    run_id: str | None = None
    row_ids: list[str] = [""] * len(outcome.results)
    if not args.no_persist and persistence_enabled():
        try:
            run_id, row_ids = _save(args.db_path or None, prompt, outcome)
        except (sqlite3.Error, OSError) as e:
            # Results are still printed when the store is unusable.
            logger.error("run_persist_failed", error=str(e))
            print(f"warning: run not saved: {e}", file=sys.stderr)

    if args.json:
        payload = {
            "runId": run_id,
            "results": [
                {
                    "providerId": r.provider_id,
                    "modelId": r.model_id,
                    "modelRowId": row_id,
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
                for r, row_id in zip(outcome.results, row_ids)
            ],
            "totalCostUsd": outcome.total_cost_usd,
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        _print_summary(run_id, outcome)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
