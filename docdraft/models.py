"""Data models for the assistant."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import numpy as np

CHANNEL_DOCUMENT = "document"
CHANNEL_GENERAL = "general"

ROLE_USER = "user"
ROLE_MODEL = "model"


@dataclass
class KnowledgeChunk:
    """Represents a chunk of text from a knowledge base document."""

    content: str
    metadata: dict[str, Any]
    embedding: np.ndarray | None = None

    @property
    def source(self) -> str:
        """Name of the document the chunk was cut from."""
        return str(self.metadata.get("source", "unknown"))


@dataclass(frozen=True)
class SubField:
    """One column of a repeating group."""

    tag: str
    label: str = ""


@dataclass(frozen=True)
class ScalarField:
    """A field filled with a single value."""

    tag: str
    label: str = ""
    question: str = ""
    example_answer: str = ""
    split_date: bool = False


@dataclass(frozen=True)
class LoopField:
    """A repeating group: zero or more rows sharing the same subfields."""

    tag: str
    subfields: tuple[SubField, ...]
    label: str = ""
    question: str = ""
    example_answer: str = ""
    index_tag: str | None = None

    @property
    def subfield_tags(self) -> list[str]:
        return [sub.tag for sub in self.subfields]


FieldSpec = ScalarField | LoopField


@dataclass(frozen=True)
class TemplateInfo:
    """A catalog entry as declared in the templates registry."""

    id: str
    human_name: str
    language: str
    fields: tuple[FieldSpec, ...]
    preview: str | None = None

    @property
    def has_authored_questions(self) -> bool:
        return all(spec.question and spec.example_answer for spec in self.fields)


@dataclass(frozen=True)
class TemplateSchema:
    """Ordered field specification of a template, with one question per field."""

    id: str
    human_name: str
    language: str
    fields: tuple[FieldSpec, ...]

    def field_for(self, tag: str) -> FieldSpec | None:
        """Find a top-level field by tag.

        Returns:
            The matching field spec, or None when the tag is not declared.
        """
        for spec in self.fields:
            if spec.tag == tag:
                return spec
        return None


class IntentKind(StrEnum):
    """Routing outcome for a free-form utterance."""

    START_DOCUMENT = "start_document"
    CONTINUE = "continue"
    SMALL_TALK = "small_talk"
    CANCEL = "cancel"
    QUERY = "query"
    CLARIFICATION_NEEDED = "clarification_needed"


@dataclass(frozen=True)
class Intent:
    """Classified intent; ``template_id`` is set only for START_DOCUMENT."""

    kind: IntentKind
    template_id: str | None = None

    @classmethod
    def start_document(cls, template_id: str) -> Intent:
        return cls(IntentKind.START_DOCUMENT, template_id)

    @classmethod
    def clarification_needed(cls) -> Intent:
        return cls(IntentKind.CLARIFICATION_NEEDED)


@dataclass(frozen=True)
class ExtractionSuccess:
    """Values extracted for the current field."""

    data: dict[str, Any]


@dataclass(frozen=True)
class IntentOverride:
    """The answer was actually a command such as a cancellation."""

    intent: str


@dataclass(frozen=True)
class ExtractionFailure:
    """No usable value; ``error_message`` is shown before re-asking."""

    error_message: str


ExtractionResult = ExtractionSuccess | IntentOverride | ExtractionFailure


@dataclass
class ConversationState:
    """Per-user document dialogue state, persisted between turns."""

    user_id: str
    active_template_id: str | None = None
    current_field_index: int = 0
    collected_data: dict[str, Any] = field(default_factory=dict)
    pending_request_id: str | None = None
    failed_attempts: int = 0

    @property
    def is_active(self) -> bool:
        return self.active_template_id is not None

    def clear(self) -> None:
        """Return to the idle state."""
        self.active_template_id = None
        self.current_field_index = 0
        self.collected_data = {}
        self.pending_request_id = None
        self.failed_attempts = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "active_template_id": self.active_template_id,
            "current_field_index": self.current_field_index,
            "collected_data": self.collected_data,
            "pending_request_id": self.pending_request_id,
            "failed_attempts": self.failed_attempts,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ConversationState:
        return cls(
            user_id=str(payload["user_id"]),
            active_template_id=payload.get("active_template_id"),
            current_field_index=int(payload.get("current_field_index", 0)),
            collected_data=dict(payload.get("collected_data") or {}),
            pending_request_id=payload.get("pending_request_id"),
            failed_attempts=int(payload.get("failed_attempts", 0)),
        )


@dataclass(frozen=True)
class GeneratedDocumentRecord:
    """A document produced by a completed dialogue."""

    id: str
    user_id: str
    template_id: str
    storage_path: str
    created_at: str


@dataclass(frozen=True)
class ChatMessage:
    """One persisted history message."""

    user_id: str
    role: str
    content: str
    channel: str
    created_at: str


class TurnKind(StrEnum):
    """What a dialogue turn produced."""

    QUESTION = "question"
    CLARIFICATION = "clarification"
    FILE = "file"
    ERROR = "error"


@dataclass
class TurnResponse:
    """Result of one dialogue turn, ready for display."""

    kind: TurnKind
    message: str
    template_id: str | None = None
    document: bytes | None = None
    file_name: str | None = None
    record_id: str | None = None
