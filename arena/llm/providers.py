"""Per-provider adapters: one prompt in, one `Completion` out.

Three request/response dialects cover the five catalog providers:
- `openai_compat`: OpenAI, Mistral, Llama hosts (via the OpenAI SDK)
- `anthropic`: Messages API
- `gemini`: generateContent
"""

from __future__ import annotations

import json
import math
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

from arena.config.load_config import LLMConfig, ProviderConfig
from arena.llm.openai_compat import OpenAICompatibleChatClient


class ProviderError(RuntimeError):
    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class Completion:
    output: str
    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


def approx_tokens(text: str, *, chars_per_token: int = 4) -> int:
    return math.ceil(len(text or "") / chars_per_token)


def _as_token_count(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


def _http_post_json(url: str, *, headers: dict[str, str], payload: dict[str, Any], timeout_s: float) -> dict[str, Any]:
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    req = urllib.request.Request(
        url,
        data=body,
        method="POST",
        headers={"Content-Type": "application/json", "Accept": "application/json", **headers},
    )
    try:
        with urllib.request.urlopen(req, timeout=float(timeout_s)) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as e:
        text = ""
        try:
            text = e.read().decode("utf-8", errors="replace")
        except Exception:
            text = ""
        raise ProviderError(f"HTTP {e.code}: {text[:500]}".strip(), status=int(e.code)) from e
    except urllib.error.URLError as e:
        raise ProviderError(f"Network error: {e.reason}") from e

    try:
        obj = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProviderError(f"Invalid JSON response: {e}") from e
    return obj if isinstance(obj, dict) else {}


class ProviderAdapter:
    kind = ""

    def __init__(self, provider: ProviderConfig, llm: LLMConfig) -> None:
        self.provider = provider
        self.llm = llm

    def _approx(self, text: str) -> int:
        return approx_tokens(text, chars_per_token=self.llm.chars_per_token)

    def complete(self, *, model_id: str, prompt: str, api_key: str) -> Completion:
        raise NotImplementedError


class OpenAICompatAdapter(ProviderAdapter):
    kind = "openai_compat"

    def complete(self, *, model_id: str, prompt: str, api_key: str) -> Completion:
        client = OpenAICompatibleChatClient(
            base_url=self.provider.resolve_base_url(),
            api_key=api_key,
            model=model_id,
            timeout_s=self.llm.timeout_s,
        )
        res = client.chat(user=prompt, temperature=self.llm.temperature)
        prompt_tokens = _as_token_count(res.prompt_tokens)
        completion_tokens = _as_token_count(res.completion_tokens)
        return Completion(
            output=res.content,
            prompt_tokens=prompt_tokens if prompt_tokens is not None else self._approx(prompt),
            completion_tokens=completion_tokens if completion_tokens is not None else self._approx(res.content),
        )


class AnthropicAdapter(ProviderAdapter):
    kind = "anthropic"

    def complete(self, *, model_id: str, prompt: str, api_key: str) -> Completion:
        data = _http_post_json(
            f"{self.provider.resolve_base_url()}/messages",
            headers={
                "x-api-key": api_key,
                "anthropic-version": self.llm.anthropic_version,
            },
            payload={
                "model": model_id,
                "max_tokens": self.llm.anthropic_max_tokens,
                "messages": [{"role": "user", "content": prompt}],
            },
            timeout_s=self.llm.timeout_s,
        )

        parts: list[str] = []
        blocks = data.get("content")
        if isinstance(blocks, list):
            for block in blocks:
                if not isinstance(block, dict):
                    continue
                if isinstance(block.get("text"), str):
                    parts.append(block["text"])
                elif isinstance(block.get("content"), list):
                    parts.append("\n".join(str(p.get("text") or "") for p in block["content"] if isinstance(p, dict)))
        text = "".join(parts)

        usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
        prompt_tokens = _as_token_count(usage.get("input_tokens"))
        completion_tokens = _as_token_count(usage.get("output_tokens"))
        return Completion(
            output=text,
            prompt_tokens=prompt_tokens if prompt_tokens is not None else self._approx(prompt),
            completion_tokens=completion_tokens if completion_tokens is not None else self._approx(text),
        )


class GeminiAdapter(ProviderAdapter):
    kind = "gemini"

    def complete(self, *, model_id: str, prompt: str, api_key: str) -> Completion:
        model = urllib.parse.quote(model_id, safe="")
        key = urllib.parse.quote(api_key, safe="")
        data = _http_post_json(
            f"{self.provider.resolve_base_url()}/models/{model}:generateContent?key={key}",
            headers={},
            payload={"contents": [{"parts": [{"text": prompt}]}]},
            timeout_s=self.llm.timeout_s,
        )

        text = ""
        candidates = data.get("candidates")
        if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
            content = candidates[0].get("content")
            parts = content.get("parts") if isinstance(content, dict) else None
            if isinstance(parts, list):
                text = "\n".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))

        meta = data.get("usageMetadata") if isinstance(data.get("usageMetadata"), dict) else {}
        prompt_tokens = _as_token_count(meta.get("promptTokenCount"))
        completion_tokens = _as_token_count(meta.get("candidatesTokenCount"))
        if prompt_tokens is not None and completion_tokens is not None:
            return Completion(output=text, prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)

        # No usable usage block: approximate, keeping at least one completion token.
        total = _as_token_count(meta.get("totalTokenCount"))
        if total is None:
            total = self._approx(prompt + text)
        if prompt_tokens is None:
            prompt_tokens = self._approx(prompt)
        return Completion(
            output=text,
            prompt_tokens=prompt_tokens,
            completion_tokens=max(total - prompt_tokens, 1),
        )


_ADAPTERS: dict[str, type[ProviderAdapter]] = {
    OpenAICompatAdapter.kind: OpenAICompatAdapter,
    AnthropicAdapter.kind: AnthropicAdapter,
    GeminiAdapter.kind: GeminiAdapter,
}


def build_adapter(provider: ProviderConfig, llm: LLMConfig) -> ProviderAdapter:
    cls = _ADAPTERS.get(provider.kind)
    if cls is None:
        raise ProviderError(f"No adapter for provider kind {provider.kind!r}")
    return cls(provider, llm)
