"""Tests for the fixed-size chunker and token estimator."""

from __future__ import annotations

import pytest

from noteai_rag.errors import ChunkingConfigError
from noteai_rag.ingestion.chunking import chunk_text, estimate_tokens


class TestChunkText:
    def test_default_window_over_2500_chars(self) -> None:
        text = "x" * 2500
        chunks = chunk_text(text, max_size=1000, overlap=200)
        assert [(c.start_index, c.end_index) for c in chunks] == [
            (0, 1000),
            (800, 1800),
            (1600, 2500),
        ]
        assert [c.chunk_number for c in chunks] == [1, 2, 3]
        assert all(c.total_chunks == 3 for c in chunks)

    def test_short_text_is_single_chunk(self) -> None:
        chunks = chunk_text("hello world", max_size=100, overlap=10)
        assert len(chunks) == 1
        assert chunks[0].text == "hello world"
        assert chunks[0].total_chunks == 1

    def test_exact_size_is_single_chunk(self) -> None:
        chunks = chunk_text("a" * 100, max_size=100, overlap=10)
        assert len(chunks) == 1

    def test_empty_text(self) -> None:
        assert chunk_text("", max_size=100, overlap=10) == []

    def test_chunks_are_slices_of_source(self) -> None:
        text = "".join(chr(ord("a") + i % 26) for i in range(1234))
        chunks = chunk_text(text, max_size=100, overlap=30)
        for chunk in chunks:
            assert chunk.text == text[chunk.start_index : chunk.end_index]
            assert len(chunk.text) <= 100

    def test_covers_whole_text(self) -> None:
        text = "abcdefghij" * 37
        chunks = chunk_text(text, max_size=50, overlap=15)
        assert chunks[0].start_index == 0
        assert chunks[-1].end_index == len(text)
        for prev, cur in zip(chunks, chunks[1:]):
            assert cur.start_index - prev.start_index == 35
            assert cur.start_index < prev.end_index

    def test_deterministic(self) -> None:
        text = "The quick brown fox. " * 40
        assert chunk_text(text, 120, 20) == chunk_text(text, 120, 20)

    def test_zero_overlap(self) -> None:
        chunks = chunk_text("a" * 250, max_size=100, overlap=0)
        assert [(c.start_index, c.end_index) for c in chunks] == [(0, 100), (100, 200), (200, 250)]

    def test_overlap_equal_to_size_rejected(self) -> None:
        with pytest.raises(ChunkingConfigError):
            chunk_text("abc", max_size=10, overlap=10)

    def test_config_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            chunk_text("abc", max_size=10, overlap=20)


class TestEstimateTokens:
    def test_latin_four_chars_per_token(self) -> None:
        assert estimate_tokens("abcd" * 10) == 10

    def test_japanese_one_and_half_chars_per_token(self) -> None:
        assert estimate_tokens("あいう") == 2
        assert estimate_tokens("漢字" * 3) == 4

    def test_katakana(self) -> None:
        assert estimate_tokens("カタカナカナ") == 4

    def test_mixed(self) -> None:
        assert estimate_tokens("あいう" + "abcd") == 3

    def test_empty(self) -> None:
        assert estimate_tokens("") == 0
