"""Template catalog and field schema resolution."""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .config import config
from .document_processing import DocumentLoader
from .errors import (
    MalformedModelOutput,
    ModelUnavailable,
    SchemaSynthesisFailed,
    UnknownTemplate,
)
from .json_output import extract_json
from .language import language_name
from .models import (
    FieldSpec,
    LoopField,
    ScalarField,
    SubField,
    TemplateInfo,
    TemplateSchema,
)

if TYPE_CHECKING:
    from .gateway import ModelGateway

logger = config.get_logger(__name__)

LOOP_TYPE = "loop"
SUPPORTED_LANGUAGES = {"ru", "kz", "en"}
PREVIEW_CHAR_LIMIT = 6000
SYNTHESIS_ATTEMPTS = 3
SYNTHESIS_RETRY_DELAY = 1.0


def _require_text(raw: dict[str, Any], key: str, where: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        msg = f"{where}: '{key}' must be a non-empty string"
        raise ValueError(msg)
    return value.strip()


def _optional_text(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    return value.strip() if isinstance(value, str) else ""


def parse_field(raw: Any, where: str) -> FieldSpec:
    """Build a field spec from one registry entry.

    Returns:
        A ScalarField or a LoopField.

    Raises:
        ValueError: If the entry is malformed.
    """
    if not isinstance(raw, dict):
        msg = f"{where}: field must be an object"
        raise ValueError(msg)

    tag = _require_text(raw, "tag", where)
    label = _optional_text(raw, "label")
    question = _optional_text(raw, "question")
    example = _optional_text(raw, "example")

    if raw.get("type") != LOOP_TYPE:
        return ScalarField(
            tag=tag,
            label=label,
            question=question,
            example_answer=example,
            split_date=bool(raw.get("split_date", False)),
        )

    raw_subfields = raw.get("subfields")
    if not isinstance(raw_subfields, list) or not raw_subfields:
        msg = f"{where}: loop '{tag}' must declare subfields"
        raise ValueError(msg)

    subfields = []
    for raw_sub in raw_subfields:
        if not isinstance(raw_sub, dict):
            msg = f"{where}: subfields of '{tag}' must be objects"
            raise ValueError(msg)
        subfields.append(
            SubField(
                tag=_require_text(raw_sub, "tag", where),
                label=_optional_text(raw_sub, "label"),
            )
        )

    sub_tags = [sub.tag for sub in subfields]
    if len(set(sub_tags)) != len(sub_tags):
        msg = f"{where}: loop '{tag}' has duplicate subfield tags"
        raise ValueError(msg)

    index_tag = raw.get("index_tag")
    if index_tag is not None and index_tag not in sub_tags:
        msg = f"{where}: index_tag '{index_tag}' is not a subfield of '{tag}'"
        raise ValueError(msg)

    return LoopField(
        tag=tag,
        subfields=tuple(subfields),
        label=label,
        question=question,
        example_answer=example,
        index_tag=index_tag,
    )


def parse_template(raw: Any) -> TemplateInfo:
    """Build a catalog entry from its registry definition.

    Returns:
        The validated TemplateInfo.

    Raises:
        ValueError: If the definition is malformed.
    """
    if not isinstance(raw, dict):
        msg = "template entry must be an object"
        raise ValueError(msg)

    template_id = _require_text(raw, "id", "template")
    where = f"template '{template_id}'"
    name = _require_text(raw, "name", where)
    language = _require_text(raw, "language", where).lower()
    if language not in SUPPORTED_LANGUAGES:
        msg = f"{where}: unsupported language '{language}'"
        raise ValueError(msg)

    raw_fields = raw.get("fields")
    if not isinstance(raw_fields, list) or not raw_fields:
        msg = f"{where}: field list must not be empty"
        raise ValueError(msg)

    fields = tuple(parse_field(raw_field, where) for raw_field in raw_fields)
    tags = [spec.tag for spec in fields]
    if len(set(tags)) != len(tags):
        msg = f"{where}: duplicate field tags"
        raise ValueError(msg)

    preview = raw.get("preview")
    return TemplateInfo(
        id=template_id,
        human_name=name,
        language=language,
        fields=fields,
        preview=preview if isinstance(preview, str) and preview else None,
    )


class TemplateCatalog:
    """Read-only registry of document templates."""

    def __init__(self, templates: list[TemplateInfo] | None = None) -> None:
        """Index the given templates by lower-cased id."""
        self._templates: dict[str, TemplateInfo] = {}
        for info in templates or []:
            key = info.id.lower()
            if key in self._templates:
                logger.warning("Duplicate template id %s skipped", info.id)
                continue
            self._templates[key] = info

    @classmethod
    def from_file(cls, path: Path | None = None) -> TemplateCatalog:
        """Load and validate the JSON registry.

        Invalid entries are logged and skipped. A missing or unreadable
        registry yields an empty catalog.

        Returns:
            The loaded catalog.
        """
        path = Path(path or config.TEMPLATES_REGISTRY_PATH)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning("Template registry %s not found", path)
            return cls()
        except (OSError, json.JSONDecodeError):
            logger.exception("Could not read template registry %s", path)
            return cls()

        entries = payload.get("templates", []) if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            logger.error("Template registry %s has no template list", path)
            return cls()

        templates = []
        for position, raw in enumerate(entries):
            try:
                templates.append(parse_template(raw))
            except ValueError as e:
                logger.error("Skipping template #%d in %s: %s", position, path, e)

        logger.info("Loaded %d templates from %s", len(templates), path)
        return cls(templates)

    def list_templates(self) -> list[TemplateInfo]:
        """All templates in registry order."""  # noqa: DOC201
        return list(self._templates.values())

    def get(self, template_id: str | None) -> TemplateInfo | None:
        """Find a template by id, ignoring case.

        Returns:
            The template, or None when it is not registered.
        """
        if not template_id:
            return None
        return self._templates.get(template_id.strip().lower())

    def __contains__(self, template_id: object) -> bool:
        return isinstance(template_id, str) and self.get(template_id) is not None

    def __len__(self) -> int:
        return len(self._templates)


def describe_structure(fields: tuple[FieldSpec, ...]) -> str:
    """Render the field structure as a bullet list for prompts.

    Returns:
        One line per top-level field.
    """
    lines = []
    for spec in fields:
        label = f" ({spec.label})" if spec.label else ""
        if isinstance(spec, LoopField):
            subs = ", ".join(
                f"{sub.tag} ({sub.label})" if sub.label else sub.tag
                for sub in spec.subfields
            )
            lines.append(
                f"- {spec.tag}{label}: repeating group containing fields: {subs}"
            )
        else:
            lines.append(f"- {spec.tag}{label}")
    return "\n".join(lines)


class TemplateSchemaResolver:
    """Turns catalog entries into schemas with one question per field."""

    def __init__(
        self,
        catalog: TemplateCatalog,
        gateway: ModelGateway,
        preview_dir: Path | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the resolver.

        Args:
            catalog: Registered templates.
            gateway: Model gateway used to write missing questions.
            preview_dir: Directory with template previews (PDF or text).
            sleep: Blocking wait used between synthesis attempts.
        """
        self.catalog = catalog
        self.gateway = gateway
        self.preview_dir = Path(preview_dir or config.TEMPLATE_PREVIEW_DIR)
        self._sleep = sleep
        self._cache: dict[str, TemplateSchema] = {}
        self._lock = threading.Lock()

    def get_schema(self, template_id: str) -> TemplateSchema:
        """Resolve the schema for a template.

        Returns:
            The template schema with a question and example for every field.

        Raises:
            UnknownTemplate: If the template is not registered.
        """
        info = self.catalog.get(template_id)
        if info is None:
            raise UnknownTemplate(template_id)

        with self._lock:
            cached = self._cache.get(info.id)
        if cached is not None:
            return cached

        if info.has_authored_questions:
            fields = info.fields
        else:
            fields = self._synthesize(info)

        schema = TemplateSchema(
            id=info.id,
            human_name=info.human_name,
            language=info.language,
            fields=fields,
        )
        with self._lock:
            self._cache.setdefault(info.id, schema)
            return self._cache[info.id]

    def _preview_text(self, info: TemplateInfo) -> str | None:
        if not info.preview:
            return None
        path = self.preview_dir / info.preview
        if not path.exists():
            logger.warning("Preview %s for template %s not found", path, info.id)
            return None
        try:
            text = DocumentLoader.load_document(path)
        except Exception:  # noqa: BLE001
            logger.warning("Could not read preview %s; continuing without it", path)
            return None
        return text[:PREVIEW_CHAR_LIMIT]

    def _build_prompt(self, info: TemplateInfo) -> str:
        preview = self._preview_text(info)
        preview_block = (
            f"\nRendered preview of the document:\n\"\"\"\n{preview}\n\"\"\"\n"
            if preview
            else ""
        )
        return (
            "You write the questions an assistant asks to collect the data for "
            f'the document "{info.human_name}".\n'
            f"Write every question and example strictly in "
            f"{language_name(info.language)}.\n\n"
            f"Document fields:\n{describe_structure(info.fields)}\n"
            f"{preview_block}\n"
            "Rules:\n"
            "1. Collapse every repeating group into exactly ONE consolidated "
            "question asking the user to list all rows with all of their fields "
            "in a single answer.\n"
            "2. Every field that is not a repeating group gets its own question.\n"
            "3. Every question has a concrete, realistic example answer. Never "
            "leave the example empty.\n"
            "4. Use only the top-level tags listed above, never the tags inside "
            "a repeating group.\n\n"
            "Return ONLY a JSON array in the order of the fields above:\n"
            '[{"tag": "...", "question": "...", "example": "..."}]'
        )

    @staticmethod
    def _validate_questions(
        items: list[Any],
        info: TemplateInfo,
    ) -> dict[str, tuple[str, str]]:
        """Check the synthesized questions against the declared fields.

        Returns:
            Mapping of tag to (question, example).

        Raises:
            MalformedModelOutput: If any tag is missing, repeated or unknown,
                or a question or example is empty.
        """
        expected = {spec.tag for spec in info.fields}
        questions: dict[str, tuple[str, str]] = {}
        for item in items:
            if not isinstance(item, dict):
                msg = "question entry is not an object"
                raise MalformedModelOutput(msg)
            tag = item.get("tag")
            question = item.get("question")
            example = item.get("example")
            if tag not in expected:
                msg = f"unexpected tag {tag!r}"
                raise MalformedModelOutput(msg)
            if tag in questions:
                msg = f"tag {tag!r} appears more than once"
                raise MalformedModelOutput(msg)
            if not isinstance(question, str) or not question.strip():
                msg = f"empty question for {tag!r}"
                raise MalformedModelOutput(msg)
            if not isinstance(example, str) or not example.strip():
                msg = f"empty example for {tag!r}"
                raise MalformedModelOutput(msg)
            questions[tag] = (question.strip(), example.strip())

        missing = expected - questions.keys()
        if missing:
            msg = f"no question for {', '.join(sorted(missing))}"
            raise MalformedModelOutput(msg)
        return questions

    def _synthesize(self, info: TemplateInfo) -> tuple[FieldSpec, ...]:
        """Ask the model for the missing questions.

        Returns:
            Fields in declared order, authored questions kept as written.

        Raises:
            SchemaSynthesisFailed: If no valid question list was produced.
        """
        prompt = self._build_prompt(info)
        last_error: Exception | None = None

        for attempt in range(1, SYNTHESIS_ATTEMPTS + 1):
            try:
                raw = self.gateway.invoke(prompt)
                questions = self._validate_questions(extract_json(raw, list), info)
            except ModelUnavailable as e:
                msg = f"Questions for {info.id} could not be generated"
                raise SchemaSynthesisFailed(msg) from e
            except MalformedModelOutput as e:
                last_error = e
                logger.warning(
                    "Question synthesis for %s failed (attempt %d/%d): %s",
                    info.id,
                    attempt,
                    SYNTHESIS_ATTEMPTS,
                    e,
                )
                if attempt < SYNTHESIS_ATTEMPTS:
                    self._sleep(SYNTHESIS_RETRY_DELAY)
            else:
                logger.info("Synthesized questions for template %s", info.id)
                return tuple(self._with_question(spec, questions) for spec in info.fields)

        msg = f"Questions for {info.id} could not be generated"
        raise SchemaSynthesisFailed(msg) from last_error

    @staticmethod
    def _with_question(
        spec: FieldSpec,
        questions: dict[str, tuple[str, str]],
    ) -> FieldSpec:
        if spec.question and spec.example_answer:
            return spec
        question, example = questions[spec.tag]
        return replace(spec, question=question, example_answer=example)
