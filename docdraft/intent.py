"""Routing of free-form utterances to dialogue intents."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .config import config
from .errors import MalformedModelOutput
from .json_output import extract_json
from .models import Intent, IntentKind

if TYPE_CHECKING:
    from .gateway import ModelGateway
    from .templates import TemplateCatalog

logger = config.get_logger(__name__)

CLASSIFICATION_PROMPT = """\
Classify the user's message for a document drafting assistant.
Apply the rules STRICTLY in this order and stop at the first one that matches:
1. SMALL TALK: the message is only a greeting ("привет", "салем", "hello") \
or a question about you ("кто ты?", "кімсің сен") -> {{"intent": "small_talk"}}
2. CANCEL: the message explicitly cancels ("отмена", "не хочу", "керек жок", \
"передумал", "cancel") -> {{"intent": "cancel"}}
3. QUERY: the message is a complaint, an off-topic question, a statement or \
meaningless text unrelated to drafting a document ("сосед затопил", \
"кто несет ответственность", "мда") -> {{"intent": "query"}}
4. START DOCUMENT: the message names exactly ONE of the templates below \
-> {{"intent": "start_document", "template_id": "<id of that template>"}}
5. CONTINUE: the message only asks to go on with a document started earlier \
("продолжим", "давай дальше", "жалғастырайық", "continue") -> {{"intent": "continue"}}
6. CLARIFICATION: the message asks for some document without naming one, \
or matches several templates -> {{"intent": "clarification_needed"}}
7. Anything else -> {{"intent": "clarification_needed"}}

Templates (id: name):
{templates}

Message: "{utterance}"

Return ONLY one JSON object."""


class IntentClassifier:
    """Single-call intent classifier with a strict priority decision tree."""

    def __init__(self, gateway: ModelGateway) -> None:
        self.gateway = gateway

    def classify(self, utterance: str, catalog: TemplateCatalog) -> Intent:
        """Classify an utterance against the template catalog.

        Unparseable answers fall back to clarification rather than failing.
        ModelUnavailable from the gateway propagates to the caller.

        Returns:
            The classified intent.
        """
        templates = "\n".join(
            f"- {info.id}: {info.human_name}" for info in catalog.list_templates()
        )
        prompt = CLASSIFICATION_PROMPT.format(
            templates=templates or "- (none)",
            utterance=utterance.strip(),
        )
        raw = self.gateway.invoke(prompt)

        try:
            payload = extract_json(raw, dict)
        except MalformedModelOutput:
            logger.warning("Malformed intent output: %r", raw)
            return Intent.clarification_needed()

        try:
            kind = IntentKind(str(payload.get("intent", "")).strip().lower())
        except ValueError:
            logger.warning("Unknown intent in classifier output: %r", payload)
            return Intent.clarification_needed()

        if kind is not IntentKind.START_DOCUMENT:
            return Intent(kind)

        info = catalog.get(payload.get("template_id"))
        if info is None:
            logger.warning(
                "Classifier named unknown template %r", payload.get("template_id")
            )
            return Intent.clarification_needed()
        return Intent.start_document(info.id)
