"""LLM Arena: compare one prompt across several LLM providers, vote, and rank."""

__version__ = "0.1.0"
