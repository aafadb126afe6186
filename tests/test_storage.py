"""Tests for dialogue state, chat history and document record persistence."""

import pytest

from docdraft.models import (
    CHANNEL_DOCUMENT,
    CHANNEL_GENERAL,
    ROLE_MODEL,
    ROLE_USER,
    ConversationState,
)
from docdraft.storage import ConversationStateStore


def test_missing_state_is_idle(state_store):
    state = state_store.load("nobody")

    assert state.user_id == "nobody"
    assert not state.is_active
    assert state.current_field_index == 0
    assert state.collected_data == {}


def test_state_roundtrip_survives_new_store(state_store):
    state = ConversationState(
        user_id="u1",
        active_template_id="act.docx",
        current_field_index=2,
        collected_data={
            "address": "Абая 10",
            "docs": [{"index": "1", "name": "Паспорт", "notes": "копия"}],
        },
        pending_request_id="abc123",
        failed_attempts=1,
    )
    state_store.save(state)

    reloaded = ConversationStateStore(state_store.db_path).load("u1")

    assert reloaded == state


def test_save_replaces_previous_state(state_store):
    state = ConversationState(user_id="u1", active_template_id="act.docx")
    state_store.save(state)
    state.current_field_index = 1
    state_store.save(state)

    assert state_store.load("u1").current_field_index == 1


def test_clear_state(state_store):
    state_store.save(ConversationState(user_id="u1", active_template_id="act.docx"))

    state_store.clear("u1")

    assert not state_store.load("u1").is_active


def test_recent_history_window(history_store):
    for i in range(4):
        history_store.append("u1", ROLE_USER, f"question {i}", CHANNEL_GENERAL)
        history_store.append("u1", ROLE_MODEL, f"answer {i}", CHANNEL_GENERAL)

    messages = history_store.recent("u1", CHANNEL_GENERAL, 3)

    # The window of 3 starts with a model message, which is dropped
    assert [m.content for m in messages] == ["question 3", "answer 3"]
    assert messages[0].role == ROLE_USER


def test_history_is_split_by_channel_and_user(history_store):
    history_store.append("u1", ROLE_USER, "general", CHANNEL_GENERAL)
    history_store.append("u1", ROLE_USER, "document", CHANNEL_DOCUMENT)
    history_store.append("u2", ROLE_USER, "other user", CHANNEL_GENERAL)

    assert [m.content for m in history_store.recent("u1", CHANNEL_GENERAL, 10)] == [
        "general"
    ]
    assert [m.content for m in history_store.recent("u1", CHANNEL_DOCUMENT, 10)] == [
        "document"
    ]
    assert history_store.recent("u1", CHANNEL_GENERAL, 0) == []


def test_record_create_is_idempotent(record_store):
    first = record_store.create("req-1", "u1", "act.docx", "/tmp/req-1.docx")
    second = record_store.create("req-1", "u1", "act.docx", "/tmp/other.docx")

    assert second == first
    assert len(record_store.list_for_user("u1")) == 1


def test_record_id_of_another_user_is_rejected(record_store):
    record_store.create("req-1", "u1", "act.docx", "/tmp/req-1.docx")

    with pytest.raises(ValueError, match="another user"):
        record_store.create("req-1", "u2", "act.docx", "/tmp/req-1.docx")


def test_records_are_scoped_to_owner(record_store):
    record_store.create("req-1", "u1", "act.docx", "/tmp/req-1.docx")
    record_store.create("req-2", "u2", "notice.docx", "/tmp/req-2.docx")

    assert record_store.find("req-1", "u2") is None
    assert record_store.find("req-1", "u1").template_id == "act.docx"
    assert [r.id for r in record_store.list_for_user("u2")] == ["req-2"]


def test_file_store_write_and_read(file_store):
    path = file_store.write("req-1", b"first")
    path_again = file_store.write("req-1", b"second")

    assert path == path_again
    assert file_store.read(path) == b"second"
    assert path.name == "req-1.docx"
    assert not path.with_suffix(".docx.tmp").exists()
