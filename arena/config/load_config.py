from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any


_PACKAGED_CONFIG = Path(__file__).resolve().parent / "default.toml"

ADAPTER_KINDS = {"openai_compat", "anthropic", "gemini"}


class ConfigError(RuntimeError):
    pass


def _as_int(value: Any, *, key: str) -> int:
    try:
        return int(value)
    except Exception as e:
        raise ConfigError(f"Invalid int for {key}: {value!r}") from e


def _as_str(value: Any, *, key: str) -> str:
    if value is None:
        raise ConfigError(f"Missing required config key: {key}")
    return str(value)


def _as_float(value: Any, *, key: str) -> float:
    try:
        return float(value)
    except Exception as e:
        raise ConfigError(f"Invalid float for {key}: {value!r}") from e


def _as_positive_int(value: Any, *, key: str) -> int:
    n = _as_int(value, key=key)
    if n < 1:
        raise ConfigError(f"Invalid {key}: must be >= 1, got {n}")
    return n


@dataclass(frozen=True)
class LimitsConfig:
    max_models_per_run: int
    max_prompt_chars: int
    runs_list_default_limit: int
    runs_list_max_limit: int


@dataclass(frozen=True)
class LLMConfig:
    temperature: float
    timeout_s: float
    anthropic_max_tokens: int
    anthropic_version: str
    chars_per_token: int


@dataclass(frozen=True)
class PricingConfig:
    default_per_1k_usd: float


@dataclass(frozen=True)
class ModelConfig:
    id: str
    label: str


@dataclass(frozen=True)
class ProviderConfig:
    id: str
    label: str
    kind: str
    base_url: str
    api_key_env: str
    per_1k_usd: float | None
    models: tuple[ModelConfig, ...]
    base_url_env: str | None = None

    def model(self, model_id: str) -> ModelConfig | None:
        for m in self.models:
            if m.id == model_id:
                return m
        return None

    def resolve_base_url(self) -> str:
        """Base URL with the env override applied (if the provider declares one)."""
        if self.base_url_env:
            override = (os.getenv(self.base_url_env) or "").strip()
            if override:
                return override
        return self.base_url

    def server_api_key(self) -> str | None:
        key = (os.getenv(self.api_key_env) or "").strip()
        return key or None


@dataclass(frozen=True)
class AppConfig:
    limits: LimitsConfig
    llm: LLMConfig
    pricing: PricingConfig
    providers: tuple[ProviderConfig, ...]

    def provider(self, provider_id: str) -> ProviderConfig | None:
        for p in self.providers:
            if p.id == provider_id:
                return p
        return None

    def per_1k_usd(self, provider_id: str) -> float:
        p = self.provider(provider_id)
        if p is not None and p.per_1k_usd is not None:
            return p.per_1k_usd
        return self.pricing.default_per_1k_usd


def default_config_path() -> Path:
    raw = os.getenv("ARENA_CONFIG_PATH", "").strip()
    if raw:
        return Path(raw).expanduser().resolve()
    return _PACKAGED_CONFIG


def _parse_provider(raw: Any, *, index: int) -> ProviderConfig:
    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid providers[{index}]: expected a table")
    key = f"providers[{index}]"

    kind = _as_str(raw.get("kind"), key=f"{key}.kind")
    if kind not in ADAPTER_KINDS:
        raise ConfigError(f"Invalid {key}.kind: {kind!r} (expected one of {sorted(ADAPTER_KINDS)})")

    models_raw = raw.get("models") or []
    if not isinstance(models_raw, list):
        raise ConfigError(f"Invalid {key}.models: expected an array")
    models: list[ModelConfig] = []
    for j, m in enumerate(models_raw):
        if not isinstance(m, dict):
            raise ConfigError(f"Invalid {key}.models[{j}]: expected a table")
        model_id = _as_str(m.get("id"), key=f"{key}.models[{j}].id")
        models.append(ModelConfig(id=model_id, label=str(m.get("label") or model_id)))

    per_1k = raw.get("per_1k_usd")
    base_url_env = raw.get("base_url_env")
    return ProviderConfig(
        id=_as_str(raw.get("id"), key=f"{key}.id"),
        label=_as_str(raw.get("label"), key=f"{key}.label"),
        kind=kind,
        base_url=_as_str(raw.get("base_url"), key=f"{key}.base_url").rstrip("/"),
        api_key_env=_as_str(raw.get("api_key_env"), key=f"{key}.api_key_env"),
        per_1k_usd=_as_float(per_1k, key=f"{key}.per_1k_usd") if per_1k is not None else None,
        models=tuple(models),
        base_url_env=str(base_url_env) if base_url_env else None,
    )


def load_app_config(path: Path | None = None) -> AppConfig:
    cfg_path = path or default_config_path()
    if not cfg_path.exists():
        raise ConfigError(f"Config file not found: {cfg_path}")

    try:
        import tomllib  # py3.11+
    except Exception as e:
        raise ConfigError("tomllib is required (Python 3.11+).") from e

    try:
        raw = tomllib.loads(cfg_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {cfg_path}: {e}") from e

    limits = raw.get("limits", {})
    llm = raw.get("llm", {})
    pricing = raw.get("pricing", {})
    providers_raw = raw.get("providers", [])
    if not isinstance(providers_raw, list):
        raise ConfigError("Invalid providers: expected an array of tables")

    providers = tuple(_parse_provider(p, index=i) for i, p in enumerate(providers_raw))
    seen: set[str] = set()
    for p in providers:
        if p.id in seen:
            raise ConfigError(f"Duplicate provider id: {p.id!r}")
        seen.add(p.id)

    default_limit = _as_positive_int(limits.get("runs_list_default_limit"), key="limits.runs_list_default_limit")
    max_limit = _as_positive_int(limits.get("runs_list_max_limit"), key="limits.runs_list_max_limit")
    if default_limit > max_limit:
        raise ConfigError("limits.runs_list_default_limit must not exceed limits.runs_list_max_limit")

    return AppConfig(
        limits=LimitsConfig(
            max_models_per_run=_as_positive_int(limits.get("max_models_per_run"), key="limits.max_models_per_run"),
            max_prompt_chars=_as_positive_int(limits.get("max_prompt_chars"), key="limits.max_prompt_chars"),
            runs_list_default_limit=default_limit,
            runs_list_max_limit=max_limit,
        ),
        llm=LLMConfig(
            temperature=_as_float(llm.get("temperature"), key="llm.temperature"),
            timeout_s=_as_float(llm.get("timeout_s"), key="llm.timeout_s"),
            anthropic_max_tokens=_as_positive_int(llm.get("anthropic_max_tokens"), key="llm.anthropic_max_tokens"),
            anthropic_version=_as_str(llm.get("anthropic_version"), key="llm.anthropic_version"),
            chars_per_token=_as_positive_int(llm.get("chars_per_token"), key="llm.chars_per_token"),
        ),
        pricing=PricingConfig(
            default_per_1k_usd=_as_float(pricing.get("default_per_1k_usd"), key="pricing.default_per_1k_usd"),
        ),
        providers=providers,
    )
