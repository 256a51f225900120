"""Fixed-size overlapping character chunking and token estimation."""

from __future__ import annotations

from noteai_rag.ingestion.models import TextChunk
from noteai_rag.pipeline_config import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, ChunkingConfig

# Hiragana, Katakana, CJK unified ideographs
_JAPANESE_RANGES: tuple[tuple[int, int], ...] = (
    (0x3040, 0x309F),
    (0x30A0, 0x30FF),
    (0x4E00, 0x9FAF),
)


def _is_japanese(char: str) -> bool:
    code = ord(char)
    return any(lo <= code <= hi for lo, hi in _JAPANESE_RANGES)


def estimate_tokens(text: str) -> int:
    """Approximate token count for mixed Japanese/Latin text.

    Japanese characters are counted at 1.5 characters per token and
    everything else at 4 characters per token. This is a heuristic, not a
    tokenizer; callers must not rely on it being exact.
    """
    japanese = sum(1 for c in text if _is_japanese(c))
    other = len(text) - japanese
    return int(japanese / 1.5) + other // 4


def chunk_text(
    text: str,
    max_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[TextChunk]:
    """Split *text* into overlapping windows of at most *max_size* characters.

    Each window after the first starts ``max_size - overlap`` characters
    after the previous one, and the sequence ends with the first window that
    reaches the end of the text.

    Args:
        text: Source text.
        max_size: Maximum characters per chunk.
        overlap: Characters shared between consecutive chunks.

    Returns:
        Chunks in source order, numbered from 1 with ``total_chunks`` set.

    Raises:
        ChunkingConfigError: If ``overlap >= max_size`` or either is out of range.
    """
    config = ChunkingConfig(max_size=max_size, overlap=overlap)
    if not text:
        return []

    spans: list[tuple[int, int]] = []
    start = 0
    while True:
        end = min(start + config.max_size, len(text))
        spans.append((start, end))
        if end >= len(text):
            break
        start += config.stride

    total = len(spans)
    return [
        TextChunk(
            text=text[s:e],
            start_index=s,
            end_index=e,
            chunk_number=i + 1,
            total_chunks=total,
        )
        for i, (s, e) in enumerate(spans)
    ]
