"""End-to-end tests of the wired assistant with the OpenAI API mocked out."""

import json
from contextlib import ExitStack
from unittest.mock import Mock, patch

import openai
import pytest

from docdraft import assistant as assistant_module
from docdraft import build_assistant
from docdraft.language import message
from docdraft.models import CHANNEL_GENERAL, TurnKind

USER_ID = "user-1"


def chat_response(content: str) -> Mock:
    response = Mock()
    response.choices = [Mock(message=Mock(content=content))]
    return response


@pytest.fixture
def assistant(  # noqa: PLR0913, PLR0917
    tmp_path,
    registry_path,
    template_dir,
    corpus_dir,
    mock_embedding_service,
    recording_sleep,
):
    """Assistant built from config pointing at temporary directories."""
    overrides = {
        "TEMPLATES_REGISTRY_PATH": registry_path,
        "TEMPLATE_DOCX_DIR": template_dir,
        "TEMPLATE_PREVIEW_DIR": tmp_path / "previews",
        "GENERATED_DOCUMENTS_DIR": tmp_path / "generated",
        "INDEX_DIR": tmp_path / "index",
        "KNOWLEDGE_BASE_DIR": corpus_dir,
        "CHAT_MODEL": "primary-model",
        "FALLBACK_CHAT_MODEL": "fallback-model",
    }
    with ExitStack() as stack:
        for name, value in overrides.items():
            stack.enter_context(patch.object(assistant_module.config, name, value))
        stack.enter_context(
            patch(
                "docdraft.assistant.EmbeddingService",
                return_value=mock_embedding_service,
            )
        )
        built = build_assistant(
            api_key="test-key", database_path=tmp_path / "docdraft.db"
        )

    built.rag.gateway._sleep = recording_sleep  # noqa: SLF001
    return built


@pytest.fixture
def chat_api(assistant):
    """Patched chat completions endpoint shared by both models."""
    client = assistant.rag.gateway.primary.client
    with patch.object(client.chat.completions, "create") as mock_create:
        yield mock_create


def test_build_assistant_loads_catalog_and_index(assistant):
    assert len(assistant.catalog) == 2
    assert assistant.index.size == 2
    assert assistant.rag.gateway is assistant.dialogue.classifier.gateway
    assert assistant.rag.gateway.fallback.client is assistant.rag.gateway.primary.client


def test_document_dialogue_end_to_end(assistant, chat_api):
    chat_api.side_effect = [
        chat_response(
            json.dumps({"intent": "start_document", "template_id": "act.docx"})
        ),
        chat_response('{"data": {"address": "10 Abay Street"}}'),
        chat_response(
            json.dumps({
                "data": {"docs": [{"index": "1", "name": "Passport", "notes": "copy"}]}
            })
        ),
        chat_response('Here you go: {"data": {"act_date": "2024-03-15"}}'),
    ]

    replies = [
        assistant.dialogue.handle_turn(USER_ID, utterance)
        for utterance in (
            "I need an acceptance act",
            "10 Abay Street",
            "1. Passport, copy.",
            "15 March 2024",
        )
    ]

    kinds = [reply.kind for reply in replies]
    assert kinds == [TurnKind.QUESTION] * 3 + [TurnKind.FILE]
    assert replies[-1].document
    records = assistant.records.list_for_user(USER_ID)
    assert [record.id for record in records] == [replies[-1].record_id]
    assert assistant.files.read(records[0].storage_path) == replies[-1].document
    assert chat_api.call_args.kwargs["model"] == "primary-model"


def test_general_question_end_to_end(assistant, chat_api):
    chat_api.return_value = chat_response(
        "**Capital repairs** use the savings account."
    )

    answer = assistant.rag.answer(USER_ID, "How are capital repairs financed?")

    assert answer == "Capital repairs use the savings account."
    prompt = chat_api.call_args.kwargs["messages"][-1]["content"]
    assert "From document faq.md:" in prompt
    assert len(assistant.history.recent(USER_ID, CHANNEL_GENERAL, 10)) == 2


def test_overloaded_primary_falls_back(
    assistant, chat_api, recording_sleep, status_error_factory
):
    overload = status_error_factory(openai.RateLimitError, 429, "Rate limit")
    chat_api.side_effect = [overload, overload, overload, chat_response("From fallback.")]

    answer = assistant.rag.answer(USER_ID, "Who elects the chairman?")

    assert answer == "From fallback."
    models = [call.kwargs["model"] for call in chat_api.call_args_list]
    assert models == ["primary-model"] * 3 + ["fallback-model"]
    assert recording_sleep.calls == [2.0, 4.0]


def test_total_outage_gives_apology(assistant, chat_api, status_error_factory):
    chat_api.side_effect = status_error_factory(openai.InternalServerError, 503)

    answer = assistant.rag.answer(USER_ID, "Кто избирает председателя?")

    assert answer == message("model_unavailable", "ru")
    assert chat_api.call_count == 6
