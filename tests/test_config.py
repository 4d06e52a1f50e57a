from __future__ import annotations

from pathlib import Path

import pytest

from arena.config.load_config import ConfigError, load_app_config


def test_default_config_has_catalog_and_prices() -> None:
    cfg = load_app_config()
    assert [p.id for p in cfg.providers] == ["openai", "anthropic", "google", "meta", "mistral"]

    anthropic = cfg.provider("anthropic")
    assert anthropic is not None
    assert anthropic.label == "Anthropic (Claude)"
    model = anthropic.model("claude-3-5-sonnet")
    assert model is not None and model.label == "claude-3.5-sonnet"

    assert cfg.per_1k_usd("openai") == pytest.approx(0.003)
    assert cfg.per_1k_usd("anthropic") == pytest.approx(0.004)
    assert cfg.per_1k_usd("google") == pytest.approx(0.0025)
    assert cfg.per_1k_usd("meta") == pytest.approx(0.0015)
    assert cfg.per_1k_usd("mistral") == pytest.approx(0.0018)
    assert cfg.per_1k_usd("unknown-provider") == pytest.approx(0.0018)


def test_llama_base_url_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    meta = load_app_config().provider("meta")
    assert meta is not None
    assert meta.resolve_base_url() == "https://api.groq.com/openai/v1"

    monkeypatch.setenv("LLAMA_API_BASE_URL", "https://llama.example.test/v1")
    assert meta.resolve_base_url() == "https://llama.example.test/v1"


def test_server_api_key_ignores_blank_values(monkeypatch: pytest.MonkeyPatch) -> None:
    openai = load_app_config().provider("openai")
    assert openai is not None
    assert openai.server_api_key() is None
    monkeypatch.setenv("OPENAI_API_KEY", "   ")
    assert openai.server_api_key() is None
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    assert openai.server_api_key() == "sk-test"


def test_missing_config_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_app_config(tmp_path / "nope.toml")


def test_unknown_adapter_kind_rejected(tmp_path: Path) -> None:
    cfg_path = tmp_path / "bad.toml"
    cfg_path.write_text(
        """
[limits]
max_models_per_run = 5
max_prompt_chars = 1000
runs_list_default_limit = 10
runs_list_max_limit = 20

[llm]
temperature = 0.7
timeout_s = 10
anthropic_max_tokens = 1024
anthropic_version = "2023-06-01"
chars_per_token = 4

[pricing]
default_per_1k_usd = 0.001

[[providers]]
id = "x"
label = "X"
kind = "carrier_pigeon"
base_url = "https://x.test"
api_key_env = "X_KEY"
models = []
""",
        encoding="utf-8",
    )
    with pytest.raises(ConfigError, match="kind"):
        load_app_config(cfg_path)


def test_config_path_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ARENA_CONFIG_PATH", str(tmp_path / "missing.toml"))
    with pytest.raises(ConfigError, match="not found"):
        load_app_config()
