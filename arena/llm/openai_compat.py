from __future__ import annotations

from dataclasses import dataclass


class LLMConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class ChatCompletionResult:
    content: str
    prompt_tokens: int | None
    completion_tokens: int | None


def normalize_base_url(base_url: str) -> str:
    """Strip a trailing `/chat/completions` so full endpoint URLs work as SDK base URLs."""
    s = (base_url or "").strip().rstrip("/")
    suffix = "/chat/completions"
    if s.endswith(suffix):
        s = s[: -len(suffix)]
    return s


class OpenAICompatibleChatClient:
    """Thin wrapper over the OpenAI SDK for any OpenAI-compatible chat endpoint.

    OpenAI, Mistral and most Llama hosts (Groq, Together, ...) speak the same
    `/chat/completions` dialect; only `base_url` and the key differ.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        model: str,
        timeout_s: float | None = None,
    ) -> None:
        self.base_url = normalize_base_url(base_url)
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s

        if not self.api_key:
            raise LLMConfigError("Missing API key for OpenAI-compatible client.")
        if not self.base_url:
            raise LLMConfigError("Missing base_url for OpenAI-compatible client.")

        try:
            from openai import OpenAI  # type: ignore
        except Exception as e:
            raise LLMConfigError("Missing dependency: openai. Install it in the runtime environment.") from e

        # Retries are left to the caller: a failed live call falls back to the mock.
        self._client = OpenAI(base_url=self.base_url, api_key=self.api_key, timeout=self.timeout_s, max_retries=0)

    def chat(self, *, user: str, temperature: float) -> ChatCompletionResult:
        resp = self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": user}],
            temperature=float(temperature),
        )

        content = ""
        if resp.choices:
            content = resp.choices[0].message.content or ""

        prompt_tokens: int | None = None
        completion_tokens: int | None = None
        usage = getattr(resp, "usage", None)
        if usage is not None:
            prompt_tokens = getattr(usage, "prompt_tokens", None)
            completion_tokens = getattr(usage, "completion_tokens", None)

        return ChatCompletionResult(
            content=str(content),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
