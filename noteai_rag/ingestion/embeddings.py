"""Embedding provider: preprocessing, caching and local/remote backend dispatch."""

from __future__ import annotations

import asyncio
import logging
import re
import time
import unicodedata
from collections import Counter, deque
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol

import openai
from openai import AsyncOpenAI

from noteai_rag.errors import (
    EmbeddingBackendError,
    NoCredentialError,
    NoteAIError,
    UnsupportedModelError,
)
from noteai_rag.ingestion.chunking import estimate_tokens
from noteai_rag.ingestion.embedding_cache import EmbeddingCache

logger = logging.getLogger(__name__)

OPENAI_PROVIDER = "openai"
RECENT_TIMES_WINDOW = 100

_WHITESPACE_RE = re.compile(r"\s+")


def _is_kept_character(char: str) -> bool:
    """Word characters, whitespace and Unicode punctuation survive stripping."""
    return (
        char.isalnum()
        or char == "_"
        or char.isspace()
        or unicodedata.category(char).startswith("P")
    )


class EmbeddingModel(str, Enum):
    """Supported embedding models with their vector size and locality."""

    OPENAI_3_SMALL = "text-embedding-3-small"
    OPENAI_3_LARGE = "text-embedding-3-large"
    OPENAI_ADA_002 = "text-embedding-ada-002"
    SENTENCE_TRANSFORMERS_MULTILINGUAL = "sentence-transformers-multilingual"
    LOCAL_JAPANESE = "local-japanese"

    @property
    def dimension(self) -> int:
        return _DIMENSIONS[self]

    @property
    def is_local(self) -> bool:
        return self in _LOCAL_MODELS

    @property
    def supports_dimensions_param(self) -> bool:
        return self in (EmbeddingModel.OPENAI_3_SMALL, EmbeddingModel.OPENAI_3_LARGE)


_DIMENSIONS: dict[EmbeddingModel, int] = {
    EmbeddingModel.OPENAI_3_SMALL: 1536,
    EmbeddingModel.OPENAI_3_LARGE: 3072,
    EmbeddingModel.OPENAI_ADA_002: 1536,
    EmbeddingModel.SENTENCE_TRANSFORMERS_MULTILINGUAL: 384,
    EmbeddingModel.LOCAL_JAPANESE: 768,
}
_LOCAL_MODELS = frozenset(
    {EmbeddingModel.SENTENCE_TRANSFORMERS_MULTILINGUAL, EmbeddingModel.LOCAL_JAPANESE}
)
_REMOTE_MODELS = tuple(m for m in EmbeddingModel if not m.is_local)
_MEMORY_USAGE_BYTES: dict[EmbeddingModel, int] = {
    EmbeddingModel.SENTENCE_TRANSFORMERS_MULTILINGUAL: 512 * 1024 * 1024,
    EmbeddingModel.LOCAL_JAPANESE: 1024 * 1024 * 1024,
}


@dataclass(frozen=True)
class PreprocessingOptions:
    normalize_whitespace: bool = True
    remove_special_characters: bool = False
    lowercase: bool = False
    max_length: int | None = 8192
    min_length: int | None = 1

    def apply(self, text: str) -> str:
        """Return *text* transformed by the enabled steps, in a fixed order."""
        if self.normalize_whitespace:
            text = _WHITESPACE_RE.sub(" ", text).strip()
        if self.remove_special_characters:
            text = "".join(c for c in text if _is_kept_character(c))
        if self.lowercase:
            text = text.lower()
        if self.max_length is not None and len(text) > self.max_length:
            text = text[: self.max_length]
        if self.min_length is not None and len(text) < self.min_length:
            text = text.ljust(self.min_length)
        return text


@dataclass(frozen=True)
class EmbeddingConfig:
    """Embedding provider configuration.

    ``retry_count`` is handed to the remote API client; the provider itself
    never retries.
    """

    model: EmbeddingModel = EmbeddingModel.OPENAI_3_SMALL
    max_tokens: int = 8192
    batch_size: int = 10
    timeout: float = 30.0
    retry_count: int = 3
    enable_caching: bool = True
    cache_expiration: float = 3600.0
    preprocessing: PreprocessingOptions = field(default_factory=PreprocessingOptions)

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            msg = f"batch_size must be positive, got {self.batch_size}"
            raise ValueError(msg)

    @classmethod
    def for_performance(cls) -> EmbeddingConfig:
        """Fast, cheap preset: small model, big batches, aggressive preprocessing."""
        return cls(
            model=EmbeddingModel.OPENAI_3_SMALL,
            max_tokens=4096,
            batch_size=20,
            timeout=15.0,
            retry_count=2,
            cache_expiration=7200.0,
            preprocessing=PreprocessingOptions(
                remove_special_characters=True,
                lowercase=True,
                max_length=4096,
                min_length=5,
            ),
        )

    @classmethod
    def for_accuracy(cls) -> EmbeddingConfig:
        """High-fidelity preset: large model, small batches, minimal preprocessing."""
        return cls(
            model=EmbeddingModel.OPENAI_3_LARGE,
            max_tokens=8192,
            batch_size=5,
            timeout=60.0,
            retry_count=5,
            cache_expiration=3600.0,
        )


@dataclass
class ProcessingStats:
    """Running observability counters, each update O(1)."""

    total_embeddings_generated: int = 0
    average_processing_time: float = 0.0
    total_tokens_processed: int = 0
    cache_lookups: int = 0
    cache_hits: int = 0
    cache_hit_rate: float = 0.0
    recent_processing_times: deque[float] = field(
        default_factory=lambda: deque(maxlen=RECENT_TIMES_WINDOW)
    )
    error_counts: Counter[str] = field(default_factory=Counter)
    last_measured_at: datetime | None = None

    def record_generation(self, processing_time: float, token_count: int) -> None:
        self.total_embeddings_generated += 1
        self.total_tokens_processed += token_count
        n = self.total_embeddings_generated
        self.average_processing_time += (processing_time - self.average_processing_time) / n
        self.recent_processing_times.append(processing_time)
        self.last_measured_at = datetime.now(UTC)

    def record_cache_lookup(self, hit: bool) -> None:
        self.cache_lookups += 1
        if hit:
            self.cache_hits += 1
        self.cache_hit_rate += (float(hit) - self.cache_hit_rate) / self.cache_lookups

    def record_error(self, error: Exception) -> None:
        self.error_counts[type(error).__name__] += 1


@dataclass(frozen=True)
class ModelInfo:
    model: EmbeddingModel
    dimension: int
    max_tokens: int
    is_loaded: bool
    memory_usage: int
    supported_languages: tuple[str, ...]


class CredentialStore(Protocol):
    """Source of API secrets, keyed by provider id."""

    def get_credential(self, provider_id: str) -> str | None: ...


class SettingsCredentialStore:
    """Credential store backed by application settings."""

    def __init__(self, openai_api_key: str = "", anthropic_api_key: str = "") -> None:
        self._keys = {"openai": openai_api_key, "anthropic": anthropic_api_key}

    def get_credential(self, provider_id: str) -> str | None:
        return self._keys.get(provider_id) or None


class RemoteEmbeddingBackend(Protocol):
    async def embed(
        self, texts: list[str], model: EmbeddingModel, api_key: str, config: EmbeddingConfig
    ) -> list[list[float]]: ...


class LocalEmbeddingBackend(Protocol):
    """In-process embedding model (e.g. a sentence-transformers wrapper)."""

    async def embed(self, text: str, model: EmbeddingModel) -> list[float]: ...


class OpenAIEmbeddingBackend:
    """Remote backend calling the OpenAI embeddings endpoint, one request per batch."""

    async def embed(
        self, texts: list[str], model: EmbeddingModel, api_key: str, config: EmbeddingConfig
    ) -> list[list[float]]:
        client = AsyncOpenAI(
            api_key=api_key, timeout=config.timeout, max_retries=config.retry_count
        )
        try:
            if model.supports_dimensions_param:
                response = await client.embeddings.create(
                    input=texts, model=model.value, dimensions=model.dimension
                )
            else:
                response = await client.embeddings.create(input=texts, model=model.value)
        except openai.APIStatusError as exc:
            raise EmbeddingBackendError(
                f"OpenAI embeddings request failed: {exc.message}", status_code=exc.status_code
            ) from exc
        except openai.APIError as exc:
            raise EmbeddingBackendError(f"OpenAI embeddings request failed: {exc}") from exc
        finally:
            await client.close()

        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            msg = f"Expected {len(texts)} embeddings, got {len(data)}"
            raise EmbeddingBackendError(msg)
        return [item.embedding for item in data]


class EmbeddingProvider:
    """Turns text into vectors, consulting the cache before any backend call.

    The same preprocessing is applied before hashing the cache key and
    before calling the backend, so cache hits are preprocessing-consistent.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        cache: EmbeddingCache,
        config: EmbeddingConfig | None = None,
        remote_backend: RemoteEmbeddingBackend | None = None,
        local_backends: dict[EmbeddingModel, LocalEmbeddingBackend] | None = None,
    ) -> None:
        self._credentials = credentials
        self._cache = cache
        self._config = config or EmbeddingConfig()
        self._remote = remote_backend or OpenAIEmbeddingBackend()
        self._local = dict(local_backends or {})
        self._current_model: EmbeddingModel | None = None
        self.stats = ProcessingStats()

    @property
    def config(self) -> EmbeddingConfig:
        return self._config

    @property
    def current_model(self) -> EmbeddingModel | None:
        return self._current_model

    async def embed(self, text: str) -> list[float]:
        """Embed one text, returning a cached vector when available."""
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts, preserving input order.

        Remote models get one request per ``batch_size`` group of cache
        misses; local models embed a group's misses concurrently.
        """
        if not texts:
            return []
        config = self._config
        processed = [config.preprocessing.apply(t) for t in texts]
        results: list[list[float] | None] = [None] * len(processed)

        misses: list[int] = []
        for i, text in enumerate(processed):
            cached = self._cache_get(text)
            if cached is not None:
                results[i] = cached
            else:
                misses.append(i)

        for start in range(0, len(misses), config.batch_size):
            group = misses[start : start + config.batch_size]
            group_texts = [processed[i] for i in group]
            began = time.perf_counter()
            try:
                vectors = await self._dispatch(group_texts)
            except NoteAIError as exc:
                self.stats.record_error(exc)
                logger.error("Embedding batch of %d failed: %s", len(group_texts), exc)
                raise
            except Exception as exc:
                wrapped = EmbeddingBackendError(f"{type(exc).__name__}: {exc}")
                self.stats.record_error(wrapped)
                logger.error("Embedding batch of %d failed: %s", len(group_texts), exc)
                raise wrapped from exc
            per_item = (time.perf_counter() - began) / len(group_texts)
            for i, text, vector in zip(group, group_texts, vectors, strict=True):
                results[i] = vector
                if config.enable_caching:
                    self._cache.set(text, config.model.value, vector, config.cache_expiration)
                self.stats.record_generation(per_item, estimate_tokens(text))

        logger.debug(
            "Embedded %d texts (%d from cache) with %s",
            len(texts),
            len(texts) - len(misses),
            config.model.value,
        )
        return [r for r in results if r is not None]

    def _cache_get(self, text: str) -> list[float] | None:
        if not self._config.enable_caching:
            return None
        cached = self._cache.get(text, self._config.model.value)
        self.stats.record_cache_lookup(cached is not None)
        return cached

    async def _dispatch(self, texts: list[str]) -> list[list[float]]:
        model = self._config.model
        if model.is_local:
            backend = self._local.get(model)
            if backend is None:
                raise UnsupportedModelError(model.value)
            semaphore = asyncio.Semaphore(self._config.batch_size)

            async def _one(text: str) -> list[float]:
                async with semaphore:
                    return await backend.embed(text, model)

            return list(await asyncio.gather(*(_one(t) for t in texts)))

        api_key = self._credentials.get_credential(OPENAI_PROVIDER)
        if not api_key:
            raise NoCredentialError(OPENAI_PROVIDER)
        vectors = await self._remote.embed(texts, model, api_key, self._config)
        if len(vectors) != len(texts) or any(not v for v in vectors):
            msg = "Embedding backend returned an invalid response"
            raise EmbeddingBackendError(msg)
        return vectors

    # -- model management --------------------------------------------------

    async def load_model(self, model: EmbeddingModel) -> None:
        if model.is_local and model not in self._local:
            raise UnsupportedModelError(model.value)
        self._current_model = model
        self._config = replace(self._config, model=model)
        logger.info("Loaded embedding model %s", model.value)

    async def unload_model(self) -> None:
        if self._current_model is not None:
            logger.info("Unloaded embedding model %s", self._current_model.value)
        self._current_model = None

    def available_models(self) -> list[EmbeddingModel]:
        models: list[EmbeddingModel] = []
        if self._credentials.get_credential(OPENAI_PROVIDER):
            models.extend(_REMOTE_MODELS)
        models.extend(m for m in EmbeddingModel if m.is_local and m in self._local)
        return models

    async def update_configuration(self, config: EmbeddingConfig) -> None:
        """Swap configuration, reloading the model if it changed."""
        previous = self._current_model
        self._config = config
        if previous is not None and previous != config.model:
            await self.unload_model()
            await self.load_model(config.model)

    async def optimize_for_performance(self) -> None:
        await self.update_configuration(EmbeddingConfig.for_performance())

    async def optimize_for_accuracy(self) -> None:
        await self.update_configuration(EmbeddingConfig.for_accuracy())

    def model_info(self) -> ModelInfo:
        model = self._config.model
        languages = ("ja",) if model is EmbeddingModel.LOCAL_JAPANESE else ("ja", "en")
        return ModelInfo(
            model=model,
            dimension=model.dimension,
            max_tokens=self._config.max_tokens,
            is_loaded=self._current_model == model,
            memory_usage=_MEMORY_USAGE_BYTES.get(model, 0),
            supported_languages=languages,
        )
