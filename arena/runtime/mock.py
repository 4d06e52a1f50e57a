from __future__ import annotations


def build_mock_completion(provider_label: str, model_label: str, prompt: str) -> str:
    """Deterministic stand-in output for models that have no key or whose live call failed."""
    return "\n".join(
        [
            f"[{provider_label} – {model_label}]",
            "",
            "This is a mocked completion. In a real deployment, this text will come from",
            "the provider's API so you can compare real answers side by side.",
            "",
            "For now, treat this as a design + product harness so you can iterate on",
            "prompt structure, comparison UX, and analytics without needing API keys.",
            "",
            "Prompt that would have been sent:",
            f"> {prompt}",
        ]
    )
