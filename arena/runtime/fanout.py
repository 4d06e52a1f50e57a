from __future__ import annotations

import contextvars
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from arena.config.load_config import AppConfig, ProviderConfig, load_app_config
from arena.llm.providers import Completion, approx_tokens, build_adapter
from arena.logging_config import get_logger
from arena.runtime.costs import estimate_cost_usd, total_cost_usd
from arena.runtime.mock import build_mock_completion


logger = get_logger(__name__)


@dataclass(frozen=True)
class ModelSelection:
    provider_id: str
    model_id: str
    api_key: str | None = None


@dataclass(frozen=True)
class ModelResult:
    provider_id: str
    provider_label: str
    model_id: str
    model_label: str
    output: str
    prompt_tokens: int
    completion_tokens: int
    cost_usd: float | None
    mocked: bool
    latency_ms: int

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class RunOutcome:
    results: list[ModelResult]
    total_cost_usd: float


def resolve_api_key(selection: ModelSelection, provider: ProviderConfig | None) -> str | None:
    """Request-supplied key wins; otherwise the provider's server-side env key."""
    key = (selection.api_key or "").strip()
    if key:
        return key
    if provider is None:
        return None
    return provider.server_api_key()


def _call_live(
    config: AppConfig, provider: ProviderConfig, selection: ModelSelection, prompt: str, api_key: str
) -> Completion | None:
    try:
        adapter = build_adapter(provider, config.llm)
        return adapter.complete(model_id=selection.model_id, prompt=prompt, api_key=api_key)
    except Exception as e:
        logger.warning(
            "live_call_failed",
            provider_id=selection.provider_id,
            model_id=selection.model_id,
            error_type=type(e).__name__,
            error=str(e)[:500],
        )
        return None


def run_one(config: AppConfig, selection: ModelSelection, prompt: str) -> ModelResult:
    provider = config.provider(selection.provider_id)
    model = provider.model(selection.model_id) if provider is not None else None
    provider_label = provider.label if provider is not None else selection.provider_id
    model_label = model.label if model is not None else selection.model_id

    started = time.perf_counter()
    completion: Completion | None = None
    api_key = resolve_api_key(selection, provider)
    if api_key and provider is not None:
        completion = _call_live(config, provider, selection, prompt, api_key)

    mocked = completion is None
    if completion is None:
        output = build_mock_completion(provider_label, model_label, prompt)
        completion = Completion(
            output=output,
            prompt_tokens=approx_tokens(prompt, chars_per_token=config.llm.chars_per_token),
            completion_tokens=approx_tokens(output, chars_per_token=config.llm.chars_per_token),
        )
    latency_ms = int(round((time.perf_counter() - started) * 1000))

    cost = estimate_cost_usd(
        config,
        provider_id=selection.provider_id,
        model_id=selection.model_id,
        prompt_tokens=completion.prompt_tokens,
        completion_tokens=completion.completion_tokens,
    )
    return ModelResult(
        provider_id=selection.provider_id,
        provider_label=provider_label,
        model_id=selection.model_id,
        model_label=model_label,
        output=completion.output,
        prompt_tokens=completion.prompt_tokens,
        completion_tokens=completion.completion_tokens,
        cost_usd=cost,
        mocked=mocked,
        latency_ms=latency_ms,
    )


def execute_prompt(
    prompt: str,
    selections: list[ModelSelection],
    *,
    config: AppConfig | None = None,
) -> RunOutcome:
    """Send `prompt` to every selected model concurrently.

    Results keep the order of `selections`. A model never fails the run: any
    live-call error degrades that model to the mock completion.
    """
    cfg = config or load_app_config()
    if not selections:
        return RunOutcome(results=[], total_cost_usd=0.0)

    with ThreadPoolExecutor(max_workers=len(selections), thread_name_prefix="arena-fanout") as pool:
        # One context copy per task so request/run ids reach the worker threads' log lines.
        futures = [
            pool.submit(contextvars.copy_context().run, run_one, cfg, s, prompt) for s in selections
        ]
        results = [f.result() for f in futures]

    logger.info(
        "prompt_fanout_completed",
        models=len(results),
        mocked=sum(1 for r in results if r.mocked),
    )
    return RunOutcome(results=results, total_cost_usd=total_cost_usd([r.cost_usd for r in results]))
