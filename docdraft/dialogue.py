"""Per-user document dialogue: routing, field collection and completion."""

from __future__ import annotations

import secrets
import sqlite3
import threading
import weakref
from typing import TYPE_CHECKING

from .config import config
from .errors import ModelUnavailable, SchemaSynthesisFailed, UnknownTemplate
from .extraction import INTERNAL_ERROR
from .language import detect_language, message
from .models import (
    CHANNEL_DOCUMENT,
    ROLE_MODEL,
    ROLE_USER,
    ConversationState,
    ExtractionFailure,
    FieldSpec,
    IntentKind,
    IntentOverride,
    LoopField,
    TemplateSchema,
    TurnKind,
    TurnResponse,
)
from .postprocessing import prepare_render_data

if TYPE_CHECKING:
    from .extraction import AnswerExtractor
    from .intent import IntentClassifier
    from .rendering import DocxRenderer
    from .storage import (
        ChatHistoryStore,
        ConversationStateStore,
        DocumentRecordStore,
        GeneratedFileStore,
    )
    from .templates import TemplateCatalog, TemplateSchemaResolver

logger = config.get_logger(__name__)

IDLE_REPLIES = {
    IntentKind.SMALL_TALK: "greeting",
    IntentKind.QUERY: "query_redirect",
    IntentKind.CANCEL: "cancelled",
    IntentKind.CONTINUE: "nothing_to_continue",
}


class UserLockRegistry:
    """Hands out one lock per user so turns of the same user never overlap.

    Locks are held weakly: once no turn of a user is running or waiting, the
    user's lock is dropped.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._guard = threading.Lock()

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, user_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock


class DialogueStateMachine:
    """Drives document dialogues one turn at a time.

    A user is Idle until an utterance names a template. The dialogue then
    asks for each field in schema order, merging every extracted value into
    the stored state, and renders the document once the last field is
    answered. The stored state is loaded and saved on every turn under the
    user's lock; nothing is cached in memory between turns.
    """

    def __init__(  # noqa: PLR0913,PLR0917
        self,
        catalog: TemplateCatalog,
        resolver: TemplateSchemaResolver,
        classifier: IntentClassifier,
        extractor: AnswerExtractor,
        renderer: DocxRenderer,
        states: ConversationStateStore,
        history: ChatHistoryStore,
        records: DocumentRecordStore,
        files: GeneratedFileStore,
        max_failed_attempts: int | None = None,
    ) -> None:
        """Wire the collaborators together.

        Args:
            catalog: Registered templates.
            resolver: Source of template schemas.
            classifier: Intent classifier for Idle utterances.
            extractor: Answer extractor for the current field.
            renderer: Renders finished documents.
            states: Persistent per-user dialogue state.
            history: Message history; turns go to the document channel.
            records: Store of generated document records.
            files: Store of generated document files.
            max_failed_attempts: Failed answers tolerated per field before
                it is left empty. Defaults to config.MAX_FAILED_ATTEMPTS.
        """
        self.catalog = catalog
        self.resolver = resolver
        self.classifier = classifier
        self.extractor = extractor
        self.renderer = renderer
        self.states = states
        self.history = history
        self.records = records
        self.files = files
        self.max_failed_attempts = (
            config.MAX_FAILED_ATTEMPTS
            if max_failed_attempts is None
            else max_failed_attempts
        )
        self.locks = UserLockRegistry()

    def handle_turn(self, user_id: str, utterance: str) -> TurnResponse:
        """Process one user message.

        Never raises: failures become a polite message in the user's
        language and leave the stored state as it was before the turn.

        Returns:
            The reply for the user, possibly carrying a finished document.
        """
        with self.locks.lock_for(user_id):
            language = detect_language(utterance)
            try:
                self.history.append(user_id, ROLE_USER, utterance, CHANNEL_DOCUMENT)
                state = self.states.load(user_id)
                language = self._language_of(state, language)
                response = self._dispatch(state, utterance, language)
            except ModelUnavailable:
                logger.exception("Models unavailable during turn for %s", user_id)
                response = TurnResponse(
                    TurnKind.ERROR, message("model_unavailable", language)
                )
            except Exception:
                logger.exception("Turn for %s failed", user_id)
                response = TurnResponse(TurnKind.ERROR, message("try_again", language))

            try:
                self.history.append(
                    user_id, ROLE_MODEL, response.message, CHANNEL_DOCUMENT
                )
            except sqlite3.Error:
                logger.exception("Could not store the reply to %s", user_id)
            return response

    def reset(self, user_id: str) -> None:
        """Abandon the user's current dialogue, if any."""
        with self.locks.lock_for(user_id):
            self.states.clear(user_id)

    def _language_of(self, state: ConversationState, detected: str) -> str:
        """Collecting dialogues speak the template's language."""  # noqa: DOC201
        if state.is_active:
            info = self.catalog.get(state.active_template_id)
            if info is not None:
                return info.language
        return detected

    def _dispatch(
        self,
        state: ConversationState,
        utterance: str,
        language: str,
    ) -> TurnResponse:
        if not state.is_active:
            return self._route(state, utterance, language)

        try:
            schema = self.resolver.get_schema(state.active_template_id)
        except UnknownTemplate:
            logger.warning(
                "Template %s of %s is no longer registered; resetting",
                state.active_template_id,
                state.user_id,
            )
            self._clear(state)
            return self._route(state, utterance, detect_language(utterance))

        if state.current_field_index >= len(schema.fields):
            # Earlier completion failed after the last answer; retry it.
            return self._complete(state, schema)
        return self._collect(state, schema, utterance)

    def _route(
        self,
        state: ConversationState,
        utterance: str,
        language: str,
    ) -> TurnResponse:
        """Handle an utterance while no dialogue is active.

        Returns:
            The first question of a new dialogue or an Idle reply.
        """
        intent = self.classifier.classify(utterance, self.catalog)
        logger.info("Intent for %s: %s", state.user_id, intent.kind)

        if intent.kind is IntentKind.START_DOCUMENT and intent.template_id:
            return self._start(state, intent.template_id, language)

        key = IDLE_REPLIES.get(intent.kind, "clarify")
        text = f"{message(key, language)}\n\n{self._template_list(language)}"
        return TurnResponse(TurnKind.CLARIFICATION, text)

    def _template_list(self, language: str) -> str:
        templates = self.catalog.list_templates()
        if not templates:
            return message("no_templates", language)
        names = "\n".join(f"- {info.human_name}" for info in templates)
        return f"{message('template_list_header', language)}\n\n{names}"

    def _start(
        self,
        state: ConversationState,
        template_id: str,
        language: str,
    ) -> TurnResponse:
        try:
            schema = self.resolver.get_schema(template_id)
        except (UnknownTemplate, SchemaSynthesisFailed):
            logger.exception("Cannot start a dialogue for %s", template_id)
            return TurnResponse(
                TurnKind.ERROR, message("template_unavailable", language)
            )

        state.clear()
        state.active_template_id = schema.id
        state.pending_request_id = secrets.token_hex(16)
        self.states.save(state)
        logger.info("Started %s for %s", schema.id, state.user_id)

        intro = message("start_document", schema.language, name=schema.human_name)
        question = self._question_text(schema.fields[0], schema.language)
        return TurnResponse(
            TurnKind.QUESTION, f"{intro}\n\n{question}", template_id=schema.id
        )

    @staticmethod
    def _question_text(spec: FieldSpec, language: str) -> str:
        text = spec.question or spec.label or spec.tag
        if spec.example_answer:
            text += f"\n{message('example_prefix', language)}: {spec.example_answer}"
        return text

    def _collect(
        self,
        state: ConversationState,
        schema: TemplateSchema,
        utterance: str,
    ) -> TurnResponse:
        """Apply the user's answer to the current field.

        Returns:
            The next question, a re-ask, or the finished document.
        """
        spec = schema.fields[state.current_field_index]
        result = self.extractor.extract(utterance, schema.id, spec.question, spec.tag)

        if isinstance(result, IntentOverride):
            logger.info(
                "%s left %s with intent %s", state.user_id, schema.id, result.intent
            )
            self._clear(state)
            return self._route(state, utterance, detect_language(utterance))

        if isinstance(result, ExtractionFailure):
            state.failed_attempts += 1
            if state.failed_attempts >= self.max_failed_attempts:
                logger.warning(
                    "Leaving %s empty for %s after %d failed answers",
                    spec.tag,
                    state.user_id,
                    state.failed_attempts,
                )
                state.collected_data[spec.tag] = (
                    [] if isinstance(spec, LoopField) else ""
                )
                return self._advance(
                    state, schema, notice=message("field_skipped", schema.language)
                )

            self.states.save(state)
            reason = result.error_message
            if reason == INTERNAL_ERROR:
                reason = message("invalid_answer", schema.language)
            return TurnResponse(
                TurnKind.QUESTION,
                f"{reason}\n\n{self._question_text(spec, schema.language)}",
                template_id=schema.id,
            )

        state.collected_data.update(result.data)
        return self._advance(state, schema)

    def _advance(
        self,
        state: ConversationState,
        schema: TemplateSchema,
        notice: str | None = None,
    ) -> TurnResponse:
        state.current_field_index += 1
        state.failed_attempts = 0
        self.states.save(state)

        if state.current_field_index >= len(schema.fields):
            return self._complete(state, schema)

        text = self._question_text(
            schema.fields[state.current_field_index], schema.language
        )
        if notice:
            text = f"{notice}\n\n{text}"
        return TurnResponse(TurnKind.QUESTION, text, template_id=schema.id)

    def _complete(
        self,
        state: ConversationState,
        schema: TemplateSchema,
    ) -> TurnResponse:
        """Render, store and record the finished document, then go Idle.

        Any failure leaves the saved state at the end of the field list, so
        the next turn retries this step without asking again.

        Returns:
            The file response.
        """
        if not state.pending_request_id:
            state.pending_request_id = secrets.token_hex(16)
            self.states.save(state)

        data = prepare_render_data(schema, state.collected_data)
        blob = self.renderer.render(schema.id, data)
        path = self.files.write(state.pending_request_id, blob)
        record = self.records.create(
            state.pending_request_id, state.user_id, schema.id, str(path)
        )
        self._clear(state)
        logger.info("Generated document %s for %s", record.id, record.user_id)

        return TurnResponse(
            TurnKind.FILE,
            message("document_ready", schema.language, name=schema.human_name),
            template_id=schema.id,
            document=blob,
            file_name=schema.id,
            record_id=record.id,
        )

    def _clear(self, state: ConversationState) -> None:
        state.clear()
        self.states.clear(state.user_id)
