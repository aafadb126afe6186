"""Retrieval-augmented answers for general questions."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from .config import config
from .errors import ModelUnavailable
from .language import detect_language, message
from .models import CHANNEL_GENERAL, ROLE_MODEL, ROLE_USER, ChatMessage, KnowledgeChunk

if TYPE_CHECKING:
    from .gateway import ModelGateway
    from .knowledge_index import KnowledgeIndex
    from .storage import ChatHistoryStore

logger = config.get_logger(__name__)

EMPTY_CONTEXT = (
    "No relevant information was found in the documents for this question. "
    "Answer from your general knowledge of housing and condominium management "
    "in Kazakhstan and say that the answer is not taken from the documents."
)

PERSONA = """\
You are "NeoOSI", a proactive, friendly and expert assistant for residents and \
managers of condominium associations (OSI) and housing services in Kazakhstan.

Guidelines:
1. Ground every claim in the document context when it is relevant.
2. If the context has no answer, give the most useful advice you can from \
general knowledge.
3. Treat the chat history as the conversation so far; do not ask for facts \
the user already gave.
4. If the user wants a document drafted, help them name the document and \
point them to the "AI Documents" section.
5. Answer in the language of the question (Kazakh, Russian or English).
6. Write plain text without Markdown."""

_MARKUP = re.compile(r"[*#`_>]")


def strip_markup(text: str) -> str:
    """Remove Markdown structure characters from a model answer.

    Returns:
        The cleaned text.
    """
    cleaned = _MARKUP.sub("", text)
    return re.sub(r"[ \t]+\n", "\n", cleaned).strip()


def format_context(results: list[tuple[KnowledgeChunk, float]]) -> str:
    """Render retrieved chunks as prompt context.

    Returns:
        The context block, or an empty string when nothing was retrieved.
    """
    return "\n\n---\n\n".join(
        f"From document {chunk.source}:\n{chunk.content}" for chunk, _score in results
    )


def format_history(messages: list[ChatMessage]) -> str:
    """Render history messages as a transcript."""  # noqa: DOC201
    lines = []
    for item in messages:
        speaker = "User" if item.role == ROLE_USER else "Assistant"
        lines.append(f"{speaker}: {item.content}")
    return "\n".join(lines)


class RAGAnsweringService:
    """Answers questions from the knowledge index and the chat history."""

    def __init__(
        self,
        gateway: ModelGateway,
        index: KnowledgeIndex,
        history: ChatHistoryStore,
        top_k: int | None = None,
        history_limit: int | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            gateway: Model gateway used for generation.
            index: Knowledge index searched for context.
            history: Store of previous general chat messages.
            top_k: Number of chunks to retrieve. Defaults to config.RAG_TOP_K.
            history_limit: Number of history messages to include.
                Defaults to config.HISTORY_LIMIT.
        """
        self.gateway = gateway
        self.index = index
        self.history = history
        self.top_k = config.RAG_TOP_K if top_k is None else top_k
        self.history_limit = (
            config.HISTORY_LIMIT if history_limit is None else history_limit
        )

    def build_prompt(
        self,
        question: str,
        results: list[tuple[KnowledgeChunk, float]],
        messages: list[ChatMessage],
    ) -> str:
        """Compose the grounded prompt.

        Returns:
            The prompt sent to the model.
        """
        context = format_context(results) or EMPTY_CONTEXT
        transcript = format_history(messages) or "(no previous messages)"
        return (
            f"{PERSONA}\n\n"
            f"Context from documents:\n---\n{context}\n---\n\n"
            f"Chat history:\n{transcript}\n\n"
            f"Question: {question}"
        )

    def _retrieve(self, question: str) -> list[tuple[KnowledgeChunk, float]]:
        try:
            results = self.index.search(question, top_k=self.top_k)
        except Exception:
            logger.exception("Retrieval failed; answering without context")
            return []

        for i, (chunk, score) in enumerate(results):
            logger.info("  Context %d: %s (score: %.4f)", i + 1, chunk.source, score)
        return results

    def answer(self, user_id: str, question: str) -> str:
        """Answer a general question.

        Model failures produce a localized apology instead of an exception.
        Both the question and the answer are appended to the history.

        Returns:
            The answer text, never empty.
        """
        logger.info("Processing question for %s", user_id)
        results = self._retrieve(question)
        messages = self.history.recent(user_id, CHANNEL_GENERAL, self.history_limit)
        prompt = self.build_prompt(question, results, messages)

        try:
            answer = strip_markup(self.gateway.invoke(prompt))
        except ModelUnavailable:
            logger.exception("No model available for the question")
            answer = message("model_unavailable", detect_language(question))
        if not answer:
            answer = message("try_again", detect_language(question))

        self.history.append(user_id, ROLE_USER, question, CHANNEL_GENERAL)
        self.history.append(user_id, ROLE_MODEL, answer, CHANNEL_GENERAL)
        return answer
