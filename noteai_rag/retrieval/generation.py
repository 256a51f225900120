"""Grounded answer generation over a retrieved RAG context."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import anthropic
from anthropic import AsyncAnthropic
from anthropic.types import TextBlock

from noteai_rag.errors import LLMError, NoCredentialError
from noteai_rag.ingestion.chunking import estimate_tokens
from noteai_rag.retrieval.models import RAGContext, RAGResponse, RAGResponseMetadata, TokenUsage

if TYPE_CHECKING:
    from noteai_rag.retrieval.search import RetrievalCoordinator

logger = logging.getLogger(__name__)

ANSWER_TEMPERATURE = 0.3
ANSWER_MAX_TOKENS = 1000
CONTEXT_TRUNCATION_TOKENS = 4000
MAX_CITED_SOURCES = 5

SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer precisely based on the given context."
)
CONTEXT_BANNER = "The following is relevant context information:"
UNDETERMINED_ANSWER = "This cannot be determined from the provided information."


@dataclass(frozen=True)
class ChatResult:
    content: str
    cost: float | None = None
    model: str = ""


class LanguageModel(Protocol):
    async def chat(
        self,
        messages: list[dict[str, str]],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> ChatResult: ...


class AnthropicChatModel:
    """Claude-backed :class:`LanguageModel` with cost from reported usage."""

    def __init__(
        self,
        api_key: str,
        input_cost_per_mtok: float = 3.0,
        output_cost_per_mtok: float = 15.0,
        client: AsyncAnthropic | None = None,
    ) -> None:
        if client is None and not api_key:
            raise NoCredentialError("anthropic")
        self._client = client or AsyncAnthropic(api_key=api_key)
        self._input_cost = input_cost_per_mtok
        self._output_cost = output_cost_per_mtok

    async def chat(
        self,
        messages: list[dict[str, str]],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> ChatResult:
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        conversation = [m for m in messages if m["role"] != "system"]
        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=conversation,  # type: ignore[arg-type]
            )
        except anthropic.APIStatusError as exc:
            raise LLMError(f"LLM unavailable: {exc.message}", status_code=exc.status_code) from exc
        except anthropic.APIError as exc:
            raise LLMError(f"LLM request failed: {exc}") from exc

        # response.content is a union of block types; plain text is expected.
        block = response.content[0] if response.content else None
        if not isinstance(block, TextBlock):
            msg = f"Expected TextBlock from Claude, got {type(block).__name__}"
            raise LLMError(msg)

        cost = (
            response.usage.input_tokens * self._input_cost
            + response.usage.output_tokens * self._output_cost
        ) / 1_000_000
        return ChatResult(content=block.text, cost=cost, model=response.model)


def build_context_text(context: RAGContext) -> str:
    """Render admitted chunks as ``【n/total】text`` blocks under a fixed banner."""
    chunks_text = "\n\n".join(
        f"【{c.chunk_metadata.chunk_number}/{c.chunk_metadata.total_chunks}】{c.text}"
        for c in context.relevant_chunks
    )
    return f"{CONTEXT_BANNER}\n\n{chunks_text}"


def build_prompt(question: str, context_text: str) -> str:
    return (
        f"{context_text}\n\n"
        "Using the context above, answer the following question:\n\n"
        f"Question: {question}\n\n"
        "Notes:\n"
        "- Answer accurately, based only on the context.\n"
        "- If the context does not contain the answer, reply "
        f'"{UNDETERMINED_ANSWER}"\n'
        "- Do not use guesses or general knowledge; use only the provided context."
    )


def calculate_confidence(context: RAGContext) -> float:
    """Retrieval confidence blended with a bonus for having substantial context."""
    return context.confidence * 0.8 + (0.2 if context.total_tokens > 1000 else 0.1)


class AnswerSynthesizer:
    """Builds a grounded prompt from a :class:`RAGContext` and asks the LLM."""

    def __init__(self, llm: LanguageModel, model: str) -> None:
        self._llm = llm
        self._model = model

    async def answer(
        self, question: str, context: RAGContext, model: str | None = None
    ) -> RAGResponse:
        """Answer *question* from *context* only.

        Args:
            question: The user's question.
            context: Context assembled by the retrieval coordinator.
            model: Override for the configured model name.

        Returns:
            The answer with sources, confidence and token accounting.

        Raises:
            LLMError: If the language model fails.
        """
        started = time.perf_counter()
        model = model or self._model
        prompt = build_prompt(question, build_context_text(context))
        result = await self._llm.chat(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            model=model,
            max_tokens=ANSWER_MAX_TOKENS,
            temperature=ANSWER_TEMPERATURE,
        )
        response_time = time.perf_counter() - started
        logger.info(
            "Answered question with %d context tokens in %.3fs", context.total_tokens, response_time
        )
        return RAGResponse(
            question=question,
            answer=result.content,
            confidence=calculate_confidence(context),
            sources=context.sources,
            context=context,
            response_time=response_time,
            model=result.model or model,
            token_usage=TokenUsage(
                prompt_tokens=estimate_tokens(prompt),
                completion_tokens=estimate_tokens(result.content),
                estimated_cost=result.cost,
            ),
            metadata=RAGResponseMetadata(
                retrieval_method=context.retrieval_method,
                reranking_used=True,
                context_truncated=context.total_tokens >= CONTEXT_TRUNCATION_TOKENS,
                additional_sources=max(0, len(context.sources) - MAX_CITED_SOURCES),
            ),
        )


async def answer_question(
    coordinator: RetrievalCoordinator,
    synthesizer: AnswerSynthesizer,
    question: str,
    project_id: str | None = None,
    max_tokens: int = CONTEXT_TRUNCATION_TOKENS,
) -> RAGResponse:
    """Retrieve context for *question* and answer it."""
    context = await coordinator.get_relevant_context(question, project_id, max_tokens)
    return await synthesizer.answer(question, context)
