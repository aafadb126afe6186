"""Conversion of a free-form answer into the value of the current field."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .config import config
from .errors import ExtractionFailed, MalformedModelOutput
from .json_output import extract_json
from .language import language_name
from .models import (
    ExtractionFailure,
    ExtractionResult,
    ExtractionSuccess,
    IntentOverride,
    LoopField,
    ScalarField,
    TemplateSchema,
)

if TYPE_CHECKING:
    from .gateway import ModelGateway
    from .templates import TemplateSchemaResolver

logger = config.get_logger(__name__)

INTERNAL_ERROR = "internal error"
OVERRIDE_INTENTS = frozenset({"cancel", "new_document", "query"})

_OVERRIDE_RULES = """\
First decide whether the answer is really a command instead of an answer:
- the user wants to stop or cancel ("отмена", "не хочу", "керек жок", "cancel") \
-> {"intent": "cancel"}
- the user wants a different document ("хочу другой документ") \
-> {"intent": "new_document"}
- the user asks an unrelated question or writes nonsense ("а что такое акт?", \
"пофиг") -> {"intent": "query"}
"""

# Sample values used to build the worked example of a loop answer.
_EXAMPLE_ROWS = (
    ("1", "Technical passport", "copy"),
    ("2", "Project documentation", "original"),
)


def _loop_example(spec: LoopField) -> str:
    rows = []
    for sample in _EXAMPLE_ROWS:
        cells = [
            f'"{sub}": "{sample[i] if i < len(sample) else ""}"'
            for i, sub in enumerate(spec.subfield_tags)
        ]
        rows.append("{" + ", ".join(cells) + "}")
    answer = " ".join(f"{n}. {name}, {note}." for n, name, note in _EXAMPLE_ROWS)
    return f'Answer: "{answer}"\nResult: {{"data": {{"{spec.tag}": [{", ".join(rows)}]}}}}'


class AnswerExtractor:
    """Extracts scalar values or table rows from user answers."""

    def __init__(self, gateway: ModelGateway, resolver: TemplateSchemaResolver) -> None:
        """Initialize the extractor.

        Args:
            gateway: Model gateway used for extraction.
            resolver: Source of template schemas.
        """
        self.gateway = gateway
        self.resolver = resolver

    def extract(
        self,
        utterance: str,
        template_id: str,
        current_question: str,
        current_tag: str,
    ) -> ExtractionResult:
        """Extract the value for ``current_tag`` from the user's answer.

        Returns:
            Success with the field data, an intent override, or a failure
            carrying the message to show before asking again.

        Raises:
            ExtractionFailed: If ``current_tag`` is not a field of the template.
        """
        schema = self.resolver.get_schema(template_id)
        spec = schema.field_for(current_tag)
        if spec is None:
            msg = f"{current_tag} is not a field of {template_id}"
            raise ExtractionFailed(msg)

        if isinstance(spec, LoopField):
            prompt = self._loop_prompt(utterance, schema, current_question, spec)
        else:
            prompt = self._scalar_prompt(utterance, schema, current_question, spec)

        raw = self.gateway.invoke(prompt)
        try:
            payload = extract_json(raw, dict)
            return self._interpret(payload, spec)
        except MalformedModelOutput as e:
            logger.warning("Extraction output for %s rejected: %s", current_tag, e)
            return ExtractionFailure(INTERNAL_ERROR)

    @staticmethod
    def _scalar_prompt(
        utterance: str,
        schema: TemplateSchema,
        question: str,
        spec: ScalarField,
    ) -> str:
        return (
            f'You fill in the field "{spec.tag}" of the document '
            f'"{schema.human_name}".\n'
            f'The user was asked: "{question}"\n'
            f'The user answered: "{utterance}"\n\n'
            f"{_OVERRIDE_RULES}"
            "Otherwise extract the single value the question asks for, as one "
            "string, keeping the user's wording:\n"
            f'{{"data": {{"{spec.tag}": "<value>"}}}}\n'
            "If the answer is empty, irrelevant or does not contain the value, "
            "do not guess. Return instead:\n"
            '{"error": "<short polite request to answer the question again, in '
            f'{language_name(schema.language)}>"}}\n\n'
            "Return ONLY one JSON object."
        )

    @staticmethod
    def _loop_prompt(
        utterance: str,
        schema: TemplateSchema,
        question: str,
        spec: LoopField,
    ) -> str:
        subfields = ", ".join(
            f"{sub.tag} ({sub.label})" if sub.label else sub.tag
            for sub in spec.subfields
        )
        return (
            f'You fill in the table "{spec.tag}" of the document '
            f'"{schema.human_name}".\n'
            f"Each row has the fields: {subfields}.\n"
            f'The user was asked: "{question}"\n'
            f'The user answered: "{utterance}"\n\n'
            f"{_OVERRIDE_RULES}"
            "Otherwise split the answer into one row per enumerated item and map "
            "the parts of each item onto the row fields by position and meaning. "
            "Every value is a string; use an empty string for a missing part.\n"
            f"{_loop_example(spec)}\n"
            "If the answer lists no items, return instead:\n"
            '{"error": "<short polite request to list the items again, in '
            f'{language_name(schema.language)}>"}}\n\n'
            "Return ONLY one JSON object."
        )

    @staticmethod
    def _interpret(
        payload: dict[str, Any],
        spec: ScalarField | LoopField,
    ) -> ExtractionResult:
        """Validate the model's JSON object against the field spec.

        Returns:
            The typed extraction result.

        Raises:
            MalformedModelOutput: If the object does not have a valid shape.
        """
        intent = payload.get("intent")
        if intent is not None:
            intent = str(intent).strip().lower()
            if intent not in OVERRIDE_INTENTS:
                msg = f"unknown intent override {intent!r}"
                raise MalformedModelOutput(msg)
            return IntentOverride(intent)

        error = payload.get("error")
        if isinstance(error, str) and error.strip():
            return ExtractionFailure(error.strip())

        data = payload.get("data")
        if not isinstance(data, dict) or spec.tag not in data:
            msg = f"'data' does not contain {spec.tag!r}"
            raise MalformedModelOutput(msg)

        value = data[spec.tag]
        if isinstance(spec, LoopField):
            return ExtractionSuccess({spec.tag: _coerce_rows(value, spec)})

        if value is None or isinstance(value, (dict, list)):
            msg = f"value of {spec.tag!r} is not a scalar"
            raise MalformedModelOutput(msg)
        text = str(value).strip()
        if not text:
            msg = f"value of {spec.tag!r} is empty"
            raise MalformedModelOutput(msg)
        return ExtractionSuccess({spec.tag: text})


def _coerce_rows(value: Any, spec: LoopField) -> list[dict[str, str]]:
    """Normalize loop rows to the declared subfields, in declared order.

    Returns:
        Rows with exactly the declared subfield tags.

    Raises:
        MalformedModelOutput: If the value is not a non-empty list of objects.
    """
    if not isinstance(value, list) or not value:
        msg = f"rows of {spec.tag!r} must be a non-empty list"
        raise MalformedModelOutput(msg)

    rows = []
    for raw_row in value:
        if not isinstance(raw_row, dict):
            msg = f"row of {spec.tag!r} is not an object"
            raise MalformedModelOutput(msg)
        row = {
            sub: "" if raw_row.get(sub) is None else str(raw_row[sub]).strip()
            for sub in spec.subfield_tags
        }
        if any(row.values()):
            rows.append(row)

    if not rows:
        msg = f"all rows of {spec.tag!r} are empty"
        raise MalformedModelOutput(msg)
    return rows
