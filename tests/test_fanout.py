from __future__ import annotations

import threading
import time

import pytest

from arena.config.load_config import load_app_config
from arena.llm import providers
from arena.llm.providers import Completion, ProviderError
from arena.runtime import fanout
from arena.runtime.costs import estimate_cost_usd
from arena.runtime.fanout import ModelSelection, execute_prompt, resolve_api_key
from arena.runtime.mock import build_mock_completion


def test_no_keys_means_mocked_results_in_request_order() -> None:
    selections = [
        ModelSelection(provider_id="openai", model_id="gpt-4o"),
        ModelSelection(provider_id="anthropic", model_id="claude-3-5-sonnet"),
        ModelSelection(provider_id="meta", model_id="llama-3.1-70b"),
    ]
    outcome = execute_prompt("Explain recursion.", selections)

    assert [r.model_id for r in outcome.results] == ["gpt-4o", "claude-3-5-sonnet", "llama-3.1-70b"]
    assert all(r.mocked for r in outcome.results)

    second = outcome.results[1]
    assert second.provider_label == "Anthropic (Claude)"
    assert second.model_label == "claude-3.5-sonnet"
    assert second.output == build_mock_completion("Anthropic (Claude)", "claude-3.5-sonnet", "Explain recursion.")
    assert "> Explain recursion." in second.output
    assert second.prompt_tokens == 5  # ceil(18 / 4)
    assert second.completion_tokens == -(-len(second.output) // 4)

    assert outcome.total_cost_usd == pytest.approx(sum(r.cost_usd for r in outcome.results))


def test_unknown_provider_and_model_fall_back_to_raw_ids() -> None:
    outcome = execute_prompt("hi", [ModelSelection(provider_id="acme", model_id="acme-1", api_key="k")])

    r = outcome.results[0]
    assert r.mocked
    assert r.provider_label == "acme"
    assert r.model_label == "acme-1"
    # default price for unpriced providers
    assert r.cost_usd == round(0.0018 * (r.total_tokens / 1000), 5)


def test_live_call_used_when_key_present(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, str] = {}

    def _complete(self, *, model_id: str, prompt: str, api_key: str) -> Completion:  # noqa: ANN001
        seen["api_key"] = api_key
        return Completion(output="live answer", prompt_tokens=100, completion_tokens=400)

    monkeypatch.setattr(providers.OpenAICompatAdapter, "complete", _complete)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

    outcome = execute_prompt("q", [ModelSelection(provider_id="openai", model_id="gpt-4.1")])

    r = outcome.results[0]
    assert not r.mocked
    assert r.output == "live answer"
    assert r.total_tokens == 500
    assert r.cost_usd == pytest.approx(0.0015)
    assert seen["api_key"] == "sk-env"


def test_request_key_overrides_env_key(monkeypatch: pytest.MonkeyPatch) -> None:
    cfg = load_app_config()
    monkeypatch.setenv("MISTRAL_API_KEY", "env-key")
    provider = cfg.provider("mistral")

    assert resolve_api_key(ModelSelection("mistral", "mistral-small", api_key="user-key"), provider) == "user-key"
    assert resolve_api_key(ModelSelection("mistral", "mistral-small", api_key="  "), provider) == "env-key"
    assert resolve_api_key(ModelSelection("acme", "x"), None) is None


def test_live_failure_falls_back_to_mock(monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom(self, *, model_id: str, prompt: str, api_key: str) -> Completion:  # noqa: ANN001
        raise ProviderError("HTTP 500: upstream exploded", status=500)

    monkeypatch.setattr(providers.AnthropicAdapter, "complete", _boom)

    outcome = execute_prompt(
        "Why is the sky blue?",
        [ModelSelection(provider_id="anthropic", model_id="claude-3-haiku", api_key="sk-user")],
    )

    r = outcome.results[0]
    assert r.mocked
    assert r.output.startswith("[Anthropic (Claude) – claude-3-haiku]")


def test_models_are_called_concurrently(monkeypatch: pytest.MonkeyPatch) -> None:
    barrier = threading.Barrier(3, timeout=5)

    def _complete(self, *, model_id: str, prompt: str, api_key: str) -> Completion:  # noqa: ANN001
        # Only passes if all three calls are in flight at the same time.
        barrier.wait()
        return Completion(output=model_id, prompt_tokens=1, completion_tokens=1)

    monkeypatch.setattr(providers.OpenAICompatAdapter, "complete", _complete)

    started = time.perf_counter()
    outcome = execute_prompt(
        "p",
        [ModelSelection("openai", m, api_key="k") for m in ("gpt-4o", "gpt-4.1", "gpt-4.1-mini")],
    )
    assert time.perf_counter() - started < 5
    assert [r.output for r in outcome.results] == ["gpt-4o", "gpt-4.1", "gpt-4.1-mini"]
    assert not any(r.mocked for r in outcome.results)


def test_empty_selection_list() -> None:
    outcome = execute_prompt("p", [])
    assert outcome.results == []
    assert outcome.total_cost_usd == 0.0


def test_cost_estimate_rates_and_rounding() -> None:
    cfg = load_app_config()
    assert estimate_cost_usd(cfg, provider_id="openai", model_id="gpt-4o", prompt_tokens=500, completion_tokens=500) == 0.003
    assert estimate_cost_usd(cfg, provider_id="anthropic", model_id="x", prompt_tokens=1, completion_tokens=0) == 0.0
    assert estimate_cost_usd(cfg, provider_id="google", model_id="x", prompt_tokens=4, completion_tokens=4) == 0.00002
    assert estimate_cost_usd(cfg, provider_id="meta", model_id="x", prompt_tokens=2000, completion_tokens=0) == 0.003


def test_fanout_module_logs_without_leaking_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[dict] = []

    class _Log:
        def warning(self, event: str, **kw) -> None:  # noqa: ANN003
            events.append({"event": event, **kw})

        def info(self, event: str, **kw) -> None:  # noqa: ANN003
            pass

    def _boom(self, *, model_id: str, prompt: str, api_key: str) -> Completion:  # noqa: ANN001
        raise RuntimeError("connection reset")

    monkeypatch.setattr(fanout, "logger", _Log())
    monkeypatch.setattr(providers.GeminiAdapter, "complete", _boom)

    execute_prompt("p", [ModelSelection("google", "gemini-1.5-flash", api_key="secret-key")])

    assert events and events[0]["event"] == "live_call_failed"
    assert events[0]["provider_id"] == "google"
    assert "secret-key" not in repr(events)
