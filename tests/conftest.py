from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest


# Ensure `import arena...` works when running `pytest` from repo root.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))


PROVIDER_KEY_ENVS = (
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "MISTRAL_API_KEY",
    "LLAMA_API_KEY",
    "LLAMA_API_BASE_URL",
)


@pytest.fixture(autouse=True)
def _no_provider_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    # Tests must never reach a real provider: without keys every model is mocked.
    for name in PROVIDER_KEY_ENVS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("ARENA_PERSISTENCE", raising=False)
    monkeypatch.delenv("ARENA_CONFIG_PATH", raising=False)


@pytest.fixture
def db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    path = os.path.join(str(tmp_path), "arena.db")
    monkeypatch.setenv("ARENA_SQLITE_PATH", path)
    return path
