"""Pricing tables for OpenAI embedding and completion models.

Rates are USD per 1K tokens. Unknown model identifiers fall back to the default entry.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_COMPLETION_MODEL = "gpt-4o-mini"


@dataclass(frozen=True)
class CompletionPricing:
    model: str
    input_per_1k: float
    output_per_1k: float


@dataclass(frozen=True)
class EmbeddingPricing:
    model: str
    input_per_1k: float


_EMBEDDING_PRICING: dict[str, EmbeddingPricing] = {
    "text-embedding-3-small": EmbeddingPricing("text-embedding-3-small", 0.00002),
    "text-embedding-3-large": EmbeddingPricing("text-embedding-3-large", 0.00013),
    "text-embedding-ada-002": EmbeddingPricing("text-embedding-ada-002", 0.0001),
}

_COMPLETION_PRICING: dict[str, CompletionPricing] = {
    "gpt-4o": CompletionPricing("gpt-4o", 0.0025, 0.01),
    "gpt-4o-mini": CompletionPricing("gpt-4o-mini", 0.00015, 0.0006),
    "gpt-4.1": CompletionPricing("gpt-4.1", 0.002, 0.008),
    "gpt-4.1-mini": CompletionPricing("gpt-4.1-mini", 0.0004, 0.0016),
    "gpt-4.1-nano": CompletionPricing("gpt-4.1-nano", 0.0001, 0.0004),
    "o3-mini": CompletionPricing("o3-mini", 0.0011, 0.0044),
}


def get_embedding_pricing(model: str) -> EmbeddingPricing:
    return _EMBEDDING_PRICING.get(model.lower(), _EMBEDDING_PRICING[DEFAULT_EMBEDDING_MODEL])


def get_completion_pricing(model: str) -> CompletionPricing:
    return _COMPLETION_PRICING.get(model.lower(), _COMPLETION_PRICING[DEFAULT_COMPLETION_MODEL])


def embedding_cost(tokens: int, model: str) -> float:
    """Return the USD cost of embedding *tokens* tokens with *model*."""

    rate = get_embedding_pricing(model).input_per_1k
    return round(tokens / 1000 * rate, 8)


def completion_cost(prompt_tokens: int, completion_tokens: int, model: str) -> float:
    pricing = get_completion_pricing(model)
    cost = prompt_tokens / 1000 * pricing.input_per_1k + completion_tokens / 1000 * pricing.output_per_1k
    return round(cost, 8)
