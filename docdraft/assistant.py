"""Construction of the fully wired assistant."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .config import config
from .dialogue import DialogueStateMachine
from .embeddings import EmbeddingService
from .extraction import AnswerExtractor
from .gateway import ModelGateway
from .intent import IntentClassifier
from .knowledge_index import KnowledgeIndex
from .rag import RAGAnsweringService
from .rendering import DocxRenderer
from .storage import (
    ChatHistoryStore,
    ConversationStateStore,
    DocumentRecordStore,
    GeneratedFileStore,
)
from .templates import TemplateCatalog, TemplateSchemaResolver

logger = config.get_logger(__name__)


@dataclass
class Assistant:
    """Entry points used by the UI and the CLI."""

    catalog: TemplateCatalog
    index: KnowledgeIndex
    dialogue: DialogueStateMachine
    rag: RAGAnsweringService
    history: ChatHistoryStore
    records: DocumentRecordStore
    files: GeneratedFileStore


def build_assistant(
    api_key: str | None = None,
    database_path: Path | None = None,
    *,
    open_index: bool = True,
) -> Assistant:
    """Create every component from the configuration.

    Args:
        api_key: OpenAI API key. If None, reads OPENAI_API_KEY.
        database_path: SQLite file for state, history and records.
        open_index: Load or build the knowledge index right away.

    Returns:
        The wired assistant.
    """
    gateway = ModelGateway.from_config(api_key=api_key)
    catalog = TemplateCatalog.from_file(config.TEMPLATES_REGISTRY_PATH)
    resolver = TemplateSchemaResolver(catalog, gateway)

    db_path = Path(database_path or config.DATABASE_PATH)
    states = ConversationStateStore(db_path)
    history = ChatHistoryStore(db_path)
    records = DocumentRecordStore(db_path)
    files = GeneratedFileStore(config.GENERATED_DOCUMENTS_DIR)

    index = KnowledgeIndex(EmbeddingService(api_key=api_key))
    if open_index:
        index.open()

    dialogue = DialogueStateMachine(
        catalog=catalog,
        resolver=resolver,
        classifier=IntentClassifier(gateway),
        extractor=AnswerExtractor(gateway, resolver),
        renderer=DocxRenderer(config.TEMPLATE_DOCX_DIR),
        states=states,
        history=history,
        records=records,
        files=files,
    )
    rag = RAGAnsweringService(gateway, index, history)

    logger.info(
        "Assistant ready: %d templates, %d knowledge chunks",
        len(catalog),
        index.size,
    )
    return Assistant(
        catalog=catalog,
        index=index,
        dialogue=dialogue,
        rag=rag,
        history=history,
        records=records,
        files=files,
    )
