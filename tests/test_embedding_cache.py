"""Tests for the TTL-bounded embedding cache."""

from __future__ import annotations

import pytest

from noteai_rag.ingestion.embedding_cache import EmbeddingCache, cache_key, djb2_hash


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestDjb2:
    def test_empty_string(self) -> None:
        assert djb2_hash("") == 5381

    def test_single_char(self) -> None:
        assert djb2_hash("a") == 5381 * 33 + 97

    def test_wraps_to_signed_64_bit(self) -> None:
        value = djb2_hash("a long string that overflows sixty four bits " * 4)
        assert -(1 << 63) <= value < (1 << 63)

    def test_key_includes_model(self) -> None:
        assert cache_key("a", "m") == "m_177670"
        assert cache_key("a", "m1") != cache_key("a", "m2")


class TestEmbeddingCache:
    def test_miss_then_hit(self) -> None:
        cache = EmbeddingCache(clock=FakeClock())
        assert cache.get("hello", "model") is None
        cache.set("hello", "model", [0.1, 0.2], ttl=60)
        assert cache.get("hello", "model") == [0.1, 0.2]

    def test_model_scoped(self) -> None:
        cache = EmbeddingCache(clock=FakeClock())
        cache.set("hello", "model-a", [1.0], ttl=60)
        assert cache.get("hello", "model-b") is None

    def test_expires_after_ttl(self) -> None:
        clock = FakeClock()
        cache = EmbeddingCache(clock=clock)
        cache.set("hello", "model", [1.0], ttl=10)
        clock.advance(10)
        assert cache.get("hello", "model") == [1.0]
        clock.advance(1)
        assert cache.get("hello", "model") is None
        assert len(cache) == 0

    def test_evicts_oldest_over_cap(self) -> None:
        clock = FakeClock()
        cache = EmbeddingCache(max_entries=2, clock=clock)
        cache.set("a", "m", [1.0], ttl=100)
        clock.advance(1)
        cache.set("b", "m", [2.0], ttl=100)
        clock.advance(1)
        cache.set("c", "m", [3.0], ttl=100)
        assert len(cache) == 2
        assert cache.get("a", "m") is None
        assert cache.get("b", "m") == [2.0]
        assert cache.get("c", "m") == [3.0]

    def test_sweeps_expired_before_evicting(self) -> None:
        clock = FakeClock()
        cache = EmbeddingCache(max_entries=2, clock=clock)
        cache.set("a", "m", [1.0], ttl=100)
        clock.advance(1)
        cache.set("short", "m", [2.0], ttl=1)
        clock.advance(5)
        cache.set("c", "m", [3.0], ttl=100)
        assert cache.get("a", "m") == [1.0]
        assert cache.get("c", "m") == [3.0]
        assert cache.get("short", "m") is None

    def test_stored_vector_is_a_copy(self) -> None:
        cache = EmbeddingCache(clock=FakeClock())
        vector = [1.0, 2.0]
        cache.set("x", "m", vector, ttl=60)
        vector.append(3.0)
        assert cache.get("x", "m") == [1.0, 2.0]

    def test_clear(self) -> None:
        cache = EmbeddingCache(clock=FakeClock())
        cache.set("x", "m", [1.0], ttl=60)
        cache.clear()
        assert len(cache) == 0

    def test_rejects_non_positive_cap(self) -> None:
        with pytest.raises(ValueError):
            EmbeddingCache(max_entries=0)
