"""Tests for answer generation (Claude is always mocked)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from anthropic.types import TextBlock, ToolUseBlock

from noteai_rag.errors import LLMError, NoCredentialError
from noteai_rag.ingestion.models import Chunk, ChunkMetadata, ContentMetadata, SourceInfo
from noteai_rag.pipeline_config import ContentType
from noteai_rag.retrieval.generation import (
    UNDETERMINED_ANSWER,
    AnswerSynthesizer,
    AnthropicChatModel,
    ChatResult,
    answer_question,
    build_context_text,
    build_prompt,
    calculate_confidence,
)
from noteai_rag.retrieval.models import RAGContext, SourceReference
from noteai_rag.retrieval.search import RetrievalCoordinator


def _chunk(number: int, total: int, text: str) -> Chunk:
    return Chunk(
        id=f"c{number}",
        text=text,
        start_index=0,
        end_index=len(text),
        chunk_metadata=ChunkMetadata(chunk_number=number, total_chunks=total),
    )


def _source(source_id: str) -> SourceReference:
    return SourceReference(
        id=source_id,
        title=f"Source {source_id}",
        type=ContentType.NOTE,
        relevance_score=0.9,
        chunk_ids=[f"{source_id}_1"],
        project_id="p1",
    )


def _context(total_tokens: int = 100, sources: int = 1, confidence: float = 1.0) -> RAGContext:
    return RAGContext(
        query="q",
        relevant_chunks=[_chunk(1, 2, "first"), _chunk(2, 2, "second")],
        total_tokens=total_tokens,
        sources=[_source(str(i)) for i in range(sources)],
        confidence=confidence,
    )


def _mock_claude_response(content: list[object]) -> MagicMock:
    response = MagicMock()
    response.content = content
    response.usage.input_tokens = 1000
    response.usage.output_tokens = 100
    response.model = "claude-test"
    return response


class _RecordingLLM:
    def __init__(self, reply: str = "The budget is 1M.") -> None:
        self.reply = reply
        self.calls: list[dict[str, object]] = []

    async def chat(
        self, messages: list[dict[str, str]], model: str, max_tokens: int, temperature: float
    ) -> ChatResult:
        self.calls.append(
            {
                "messages": messages,
                "model": model,
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        return ChatResult(content=self.reply, cost=0.01, model="")


class TestPromptBuilding:
    def test_context_text_numbers_chunks(self) -> None:
        text = build_context_text(_context())
        assert text.startswith("The following is relevant context information:")
        assert "【1/2】first" in text
        assert "【2/2】second" in text

    def test_prompt_contains_question_and_fallback(self) -> None:
        prompt = build_prompt("What was decided?", "CONTEXT")
        assert prompt.startswith("CONTEXT")
        assert "Question: What was decided?" in prompt
        assert UNDETERMINED_ANSWER in prompt


class TestConfidence:
    def test_small_context_bonus(self) -> None:
        assert calculate_confidence(_context(total_tokens=500)) == pytest.approx(0.9)

    def test_large_context_bonus(self) -> None:
        assert calculate_confidence(_context(total_tokens=1500)) == pytest.approx(1.0)

    def test_empty_context(self) -> None:
        assert calculate_confidence(RAGContext.empty("q")) == pytest.approx(0.1)


class TestAnswerSynthesizer:
    @pytest.mark.asyncio
    async def test_answer_fields(self) -> None:
        llm = _RecordingLLM()
        response = await AnswerSynthesizer(llm, "claude-default").answer("Budget?", _context())

        assert response.answer == "The budget is 1M."
        assert response.question == "Budget?"
        assert response.model == "claude-default"
        assert response.token_usage.estimated_cost == 0.01
        assert response.token_usage.completion_tokens == len("The budget is 1M.") // 4
        assert response.metadata.reranking_used is True
        assert response.metadata.context_truncated is False
        assert response.metadata.additional_sources == 0
        assert [s.id for s in response.sources] == ["0"]

        call = llm.calls[0]
        assert call["temperature"] == 0.3
        assert call["max_tokens"] == 1000
        messages = call["messages"]
        assert messages[0]["role"] == "system"
        assert "Question: Budget?" in messages[1]["content"]

    @pytest.mark.asyncio
    async def test_model_override(self) -> None:
        llm = _RecordingLLM()
        await AnswerSynthesizer(llm, "claude-default").answer("q", _context(), model="claude-other")
        assert llm.calls[0]["model"] == "claude-other"

    @pytest.mark.asyncio
    async def test_truncation_and_additional_sources(self) -> None:
        response = await AnswerSynthesizer(_RecordingLLM(), "m").answer(
            "q", _context(total_tokens=4000, sources=7)
        )
        assert response.metadata.context_truncated is True
        assert response.metadata.additional_sources == 2

    @pytest.mark.asyncio
    async def test_llm_error_propagates(self) -> None:
        llm = MagicMock()
        llm.chat = AsyncMock(side_effect=LLMError("down", status_code=529))
        with pytest.raises(LLMError):
            await AnswerSynthesizer(llm, "m").answer("q", _context())


class TestAnthropicChatModel:
    def test_requires_key(self) -> None:
        with pytest.raises(NoCredentialError):
            AnthropicChatModel("")

    @pytest.mark.asyncio
    async def test_splits_system_and_computes_cost(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(
            return_value=_mock_claude_response([TextBlock(type="text", text="answer")])
        )
        model = AnthropicChatModel("", client=client)

        result = await model.chat(
            [{"role": "system", "content": "be precise"}, {"role": "user", "content": "hi"}],
            model="claude-sonnet",
            max_tokens=100,
            temperature=0.3,
        )

        assert result.content == "answer"
        assert result.model == "claude-test"
        assert result.cost == pytest.approx((1000 * 3.0 + 100 * 15.0) / 1_000_000)
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "be precise"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_non_text_block_is_error(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(
            return_value=_mock_claude_response(
                [ToolUseBlock(type="tool_use", id="t1", name="lookup", input={})]
            )
        )
        with pytest.raises(LLMError):
            await AnthropicChatModel("", client=client).chat(
                [{"role": "user", "content": "hi"}], "m", 10, 0.0
            )

    @pytest.mark.asyncio
    async def test_empty_content_is_error(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=_mock_claude_response([]))
        with pytest.raises(LLMError):
            await AnthropicChatModel("", client=client).chat(
                [{"role": "user", "content": "hi"}], "m", 10, 0.0
            )


class TestAnswerQuestion:
    @pytest.mark.asyncio
    async def test_end_to_end_with_empty_corpus(self, coordinator: RetrievalCoordinator) -> None:
        llm = _RecordingLLM(UNDETERMINED_ANSWER)
        response = await answer_question(coordinator, AnswerSynthesizer(llm, "m"), "apple?", "p1")
        assert response.answer == UNDETERMINED_ANSWER
        assert response.sources == []
        assert response.confidence == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_end_to_end_grounded(self, coordinator: RetrievalCoordinator) -> None:
        await coordinator.index_content(
            "apple budget approved",
            ContentMetadata(
                id="n1",
                type=ContentType.NOTE,
                project_id="p1",
                source_info=SourceInfo(title="Budget meeting"),
            ),
        )
        llm = _RecordingLLM("Approved.")
        response = await answer_question(coordinator, AnswerSynthesizer(llm, "m"), "apple?", "p1")
        assert response.sources[0].title == "Budget meeting"
        assert "apple budget approved" in llm.calls[0]["messages"][1]["content"]
        assert response.confidence == pytest.approx(0.9)
