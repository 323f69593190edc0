"""Async OpenAI client wrapper and related value objects.

Classes:
    TokenUsage: Token counts and USD cost of a single provider call.
    EmbeddingResult: One embedding vector plus usage.
    EmbeddingBatch: Collected embedding vectors plus metadata returned from the embeddings API.
    ChatCompletion: Text returned by the chat completions API plus usage.
    OpenAIService: Embeddings and chat completions with timeouts, bounded retries and cost accounting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

import openai
from openai import AsyncOpenAI
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from app.core.config import Settings, get_settings
from app.core.errors import ProviderError
from app.services.pricing import completion_cost, embedding_cost

_LOGGER = logging.getLogger(__name__)

_EMBED_BATCH_MAX = 256

# Failures where the request may never have been processed; safe to resend.
_RETRYABLE_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.InternalServerError,
)


@dataclass(slots=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            cost=round(self.cost + other.cost, 8),
        )


@dataclass(slots=True)
class EmbeddingResult:
    vector: list[float]
    model: str
    usage: TokenUsage


@dataclass(slots=True)
class EmbeddingBatch:
    vectors: list[list[float]]
    model: str
    dim: int
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(slots=True)
class ChatCompletion:
    content: str
    model: str
    usage: TokenUsage
    finish_reason: Optional[str] = None


class OpenAIService:
    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        *,
        settings: Optional[Settings] = None,
        retry_wait: Optional[wait_base] = None,
    ) -> None:
        settings = settings or get_settings()
        api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
        if client is not None:
            self._client = client
        elif api_key:
            # Retries are driven by tenacity below, not by the SDK.
            self._client = AsyncOpenAI(api_key=api_key, max_retries=0)
        else:
            self._client = None
        self._settings = settings
        self._wait = retry_wait or wait_exponential(multiplier=1, min=1, max=20)

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    @property
    def embedding_model(self) -> str:
        return self._settings.openai_embedding_model

    @property
    def chat_model(self) -> str:
        return self._settings.openai_chat_model

    async def generate_embedding(self, text: str, *, model: Optional[str] = None) -> EmbeddingResult:
        if not text or not text.strip():
            raise ProviderError("Cannot embed empty text", operation="generate_embedding")

        chosen_model = model or self.embedding_model
        payload = dict(model=chosen_model, input=text)
        response = await self._call(
            "generate_embedding",
            lambda: self._require_client().embeddings.create(
                **payload, timeout=self._settings.embedding_timeout_seconds
            ),
        )

        if not response.data or not response.data[0].embedding:
            raise ProviderError("Embedding response contained no vector", operation="generate_embedding")

        vector = list(response.data[0].embedding)
        tokens = _usage_value(response.usage, "total_tokens") or _usage_value(response.usage, "prompt_tokens")
        usage = TokenUsage(
            prompt_tokens=tokens,
            total_tokens=tokens,
            cost=embedding_cost(tokens, chosen_model),
        )
        return EmbeddingResult(vector=vector, model=chosen_model, usage=usage)

    async def generate_embeddings_batch(
        self,
        texts: Iterable[str],
        *,
        model: Optional[str] = None,
    ) -> EmbeddingBatch:
        docs = list(texts)
        chosen_model = model or self.embedding_model
        if not docs:
            return EmbeddingBatch(vectors=[], model=chosen_model, dim=0)
        if any(not doc or not doc.strip() for doc in docs):
            raise ProviderError("Cannot embed empty text", operation="generate_embeddings_batch")

        vectors: list[list[float]] = []
        usage = TokenUsage()
        dim = 0

        for start in range(0, len(docs), _EMBED_BATCH_MAX):
            chunk = docs[start : start + _EMBED_BATCH_MAX]
            payload = dict(model=chosen_model, input=chunk)
            response = await self._call(
                "generate_embeddings_batch",
                lambda: self._require_client().embeddings.create(
                    **payload, timeout=self._settings.embedding_batch_timeout_seconds
                ),
            )
            chunk_vectors = [list(item.embedding) for item in response.data]
            if len(chunk_vectors) != len(chunk):
                raise ProviderError(
                    f"Expected {len(chunk)} embeddings, received {len(chunk_vectors)}",
                    operation="generate_embeddings_batch",
                )
            vectors.extend(chunk_vectors)
            if not dim and chunk_vectors:
                dim = len(chunk_vectors[0])
            tokens = _usage_value(response.usage, "total_tokens") or _usage_value(response.usage, "prompt_tokens")
            usage = usage + TokenUsage(
                prompt_tokens=tokens,
                total_tokens=tokens,
                cost=embedding_cost(tokens, chosen_model),
            )

        return EmbeddingBatch(vectors=vectors, model=chosen_model, dim=dim, usage=usage)

    async def generate_completion(
        self,
        messages: Sequence[dict[str, str]],
        *,
        temperature: float = 0.4,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatCompletion:
        if not messages:
            raise ProviderError("At least one message is required", operation="generate_completion")

        chosen_model = model or self.chat_model
        payload: dict[str, Any] = dict(
            model=chosen_model,
            messages=list(messages),
            temperature=temperature,
            max_tokens=max_tokens or self._settings.chat_max_tokens,
        )
        response = await self._call(
            "generate_completion",
            lambda: self._require_client().chat.completions.create(
                **payload, timeout=self._settings.chat_timeout_seconds
            ),
        )

        choice = response.choices[0]
        content = getattr(choice.message, "content", "") or ""
        prompt_tokens = _usage_value(response.usage, "prompt_tokens")
        completion_tokens = _usage_value(response.usage, "completion_tokens")
        total_tokens = _usage_value(response.usage, "total_tokens") or prompt_tokens + completion_tokens
        usage = TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            cost=completion_cost(prompt_tokens, completion_tokens, chosen_model),
        )
        return ChatCompletion(
            content=content.strip(),
            model=chosen_model,
            usage=usage,
            finish_reason=getattr(choice, "finish_reason", None),
        )

    def _require_client(self) -> AsyncOpenAI:
        if self._client is None:
            raise ProviderError("OpenAI client not configured. Set OPENAI_API_KEY.")
        return self._client

    async def _call(self, operation: str, request):
        if self._client is None:
            raise ProviderError("OpenAI client not configured. Set OPENAI_API_KEY.", operation=operation)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self._settings.provider_max_attempts)),
            wait=self._wait,
            retry=retry_if_exception_type(_RETRYABLE_ERRORS),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        _LOGGER.warning("Retrying %s (attempt %s)", operation, attempt.retry_state.attempt_number)
                    return await request()
        except openai.OpenAIError as exc:
            _LOGGER.error("OpenAI %s failed: %s", operation, exc)
            raise ProviderError(f"Provider call failed: {exc}", operation=operation) from exc


def _usage_value(usage: Any, key: str) -> int:
    if usage is None:
        return 0
    if isinstance(usage, dict):
        value = usage.get(key)
    else:
        value = getattr(usage, key, None)
    return int(value or 0)
