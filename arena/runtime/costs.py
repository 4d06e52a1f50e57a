from __future__ import annotations

from arena.config.load_config import AppConfig


def estimate_cost_usd(
    config: AppConfig,
    *,
    provider_id: str,
    model_id: str,
    prompt_tokens: int,
    completion_tokens: int,
) -> float:
    """Flat per-provider estimate; `model_id` is accepted but not priced separately yet."""
    total_tokens = int(prompt_tokens) + int(completion_tokens)
    per_1k = config.per_1k_usd(provider_id)
    return round(per_1k * (total_tokens / 1000), 5)


def total_cost_usd(costs: list[float | None]) -> float:
    return round(sum(c for c in costs if c is not None), 5)
