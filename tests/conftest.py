"""Test configuration and fixtures for docdraft tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock services, scripted models and API responses
- EmbeddingService fixtures
- Text processing and vector store fixtures
- Template registry and .docx fixtures
- Wired dialogue fixtures
"""

import hashlib
import json
from pathlib import Path
from unittest.mock import Mock, patch

import docx
import httpx
import numpy as np
import openai
import pytest

from docdraft import (
    AnswerExtractor,
    DialogueStateMachine,
    EmbeddingService,
    FaissVectorStore,
    IntentClassifier,
    KnowledgeChunk,
    TemplateCatalog,
    TemplateSchemaResolver,
    TextChunker,
)
from docdraft.errors import ModelUnavailable
from docdraft.rendering import DocxRenderer
from docdraft.storage import (
    ChatHistoryStore,
    ConversationStateStore,
    DocumentRecordStore,
    GeneratedFileStore,
)
from docdraft.templates import parse_template


class TestConstants:
    """Centralized test constants to avoid repetition across test files."""

    # API Configuration
    TEST_API_KEY = "test-key"
    DEFAULT_EMBEDDING_DIMENSION = 384

    # Text Chunking Configuration
    SMALL_CHUNK_SIZE = 100
    SMALL_CHUNK_OVERLAP = 20

    # Templates
    ACT_TEMPLATE_ID = "act.docx"
    NOTICE_TEMPLATE_ID = "notice.docx"


SAMPLE_REGISTRY = {
    "templates": [
        {
            "id": TestConstants.ACT_TEMPLATE_ID,
            "name": "Acceptance act",
            "language": "en",
            "fields": [
                {
                    "tag": "address",
                    "label": "Address",
                    "question": "What is the address of the building?",
                    "example": "10 Abay Street",
                },
                {
                    "tag": "docs",
                    "label": "Documents",
                    "type": "loop",
                    "index_tag": "index",
                    "subfields": [
                        {"tag": "index", "label": "No"},
                        {"tag": "name", "label": "Name"},
                        {"tag": "notes", "label": "Notes"},
                    ],
                    "question": "List every document with its notes.",
                    "example": "1. Technical passport, copy. 2. Project, original.",
                },
                {
                    "tag": "act_date",
                    "label": "Date",
                    "type": "date",
                    "split_date": True,
                    "question": "When is the act signed?",
                    "example": "15.03.2024",
                },
            ],
        },
        {
            "id": TestConstants.NOTICE_TEMPLATE_ID,
            "name": "Уведомление о ремонте",
            "language": "ru",
            "fields": [
                {"tag": "recipient", "label": "Получатель"},
                {
                    "tag": "items",
                    "label": "Работы",
                    "type": "loop",
                    "subfields": [
                        {"tag": "item_name", "label": "Наименование"},
                        {"tag": "amount", "label": "Сумма"},
                    ],
                },
            ],
        },
    ]
}


class MockEmbeddingService:
    """Mock embedding service for testing without API calls.

    Generates deterministic embeddings based on text content hash,
    ensuring consistent test results across runs.
    """

    def __init__(
        self, dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION
    ) -> None:
        self.dimension = dimension

    def get_embedding(self, text: str) -> np.ndarray:
        """Generate deterministic mock embedding based on text hash."""
        seed = int.from_bytes(
            hashlib.sha256(text.lower().encode("utf-8")).digest()[:8],
            byteorder="big",
            signed=False,
        )
        rng = np.random.default_rng(seed)
        embedding = rng.normal(0, 1, self.dimension)
        return (embedding / np.linalg.norm(embedding)).astype(np.float32)

    def get_embeddings_batch(
        self,
        texts: list[str],
        batch_size: int = 100,  # noqa: ARG002
    ) -> list[np.ndarray]:
        """Generate batch of mock embeddings."""
        return [self.get_embedding(text) for text in texts]


class FakeModel:
    """Model handle that replays scripted outcomes.

    Each outcome is either a response string or an exception to raise.
    """

    def __init__(self, name: str, outcomes: list | None = None) -> None:
        self.name = name
        self.outcomes = list(outcomes or [])
        self.prompts: list[str] = []

    def generate(self, prompt: str, system: str | None = None) -> str:  # noqa: ARG002
        self.prompts.append(prompt)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeGateway:
    """Stand-in for ModelGateway that returns queued responses in order.

    Running out of responses behaves like both models being unavailable.
    """

    def __init__(self, responses: list | None = None) -> None:
        self.responses = list(responses or [])
        self.prompts: list[str] = []

    def queue(self, *responses) -> None:
        self.responses.extend(responses)

    def invoke(self, prompt: str, system: str | None = None) -> str:  # noqa: ARG002
        self.prompts.append(prompt)
        if not self.responses:
            msg = "No model could answer the request"
            raise ModelUnavailable(msg)
        outcome = self.responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingSleep:
    """Callable that records requested waits instead of sleeping."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_status_error(error_cls: type, status_code: int, message: str = "error"):
    """Build an OpenAI API status error with a fake HTTP response.

    Returns:
        An instance of ``error_cls``.
    """
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(status_code, request=request)
    return error_cls(message, response=response, body=None)


def create_mock_openai_response(embeddings: list[list[float]]) -> Mock:
    """Create a mock OpenAI embeddings API response.

    Returns:
        Mock object representing OpenAI embeddings API response.
    """
    mock_response = Mock()
    mock_response.data = [Mock(embedding=emb) for emb in embeddings]
    return mock_response


def create_mock_chat_response(content: str | None) -> Mock:
    """Create a mock OpenAI chat completion response.

    Returns:
        Mock object representing OpenAI chat completion response.
    """
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=content))]
    return mock_response


def build_docx_template(path: Path) -> Path:
    """Write a small .docx template exercising every placeholder kind.

    Returns:
        The written path.
    """
    document = docx.Document()
    section = document.sections[0]
    section.header.paragraphs[0].text = "Act for {address}"

    paragraph = document.add_paragraph()
    paragraph.add_run("Address: {addr")
    paragraph.add_run("ess}")
    document.add_paragraph("Signed {act_date_day} {act_date_month} {act_date_year}")
    document.add_paragraph("Unknown: [{missing_tag}]")

    table = document.add_table(rows=2, cols=3)
    table.cell(0, 0).text = "No"
    table.cell(0, 1).text = "Name"
    table.cell(0, 2).text = "Notes"
    table.cell(1, 0).text = "{docs.index}"
    table.cell(1, 1).text = "{docs.name}"
    table.cell(1, 2).text = "{docs.notes} at {address}"

    path.parent.mkdir(parents=True, exist_ok=True)
    document.save(str(path))
    return path


# ---------------------------------------------------------------------------
# OpenAI client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def openai_embeddings_api_mock():
    """Base fixture that patches OpenAI embeddings.create method."""
    with patch("openai.resources.embeddings.Embeddings.create") as mock_create:
        yield mock_create


@pytest.fixture
def openai_embeddings_factory(openai_embeddings_api_mock):
    """Factory for creating OpenAI embeddings API mocks with different scenarios."""

    def _create_mock(  # noqa: ANN202
        scenario="single_success",
        embeddings=None,
        error_message="API Error",
    ):
        openai_embeddings_api_mock.reset_mock()
        openai_embeddings_api_mock.side_effect = None
        openai_embeddings_api_mock.return_value = None

        if scenario == "single_success":
            mock_embedding = embeddings or [0.1, 0.2, 0.3, 0.4, 0.5]
            openai_embeddings_api_mock.return_value = create_mock_openai_response(
                [mock_embedding]
            )
        elif scenario == "batch_success":
            mock_embeddings = embeddings or [
                [0.1, 0.2, 0.3],
                [0.4, 0.5, 0.6],
                [0.7, 0.8, 0.9],
            ]
            openai_embeddings_api_mock.return_value = create_mock_openai_response(
                mock_embeddings
            )
        elif scenario == "error":
            openai_embeddings_api_mock.side_effect = Exception(error_message)
        elif scenario == "multiple_batches":
            openai_embeddings_api_mock.side_effect = [
                create_mock_openai_response([[0.1, 0.2], [0.3, 0.4]]),
                create_mock_openai_response([[0.5, 0.6], [0.7, 0.8]]),
            ]
        elif scenario == "rate_limited":
            openai_embeddings_api_mock.side_effect = [
                make_status_error(openai.RateLimitError, 429, "Rate limit"),
                create_mock_openai_response([[0.1, 0.2, 0.3]]),
            ]

        return openai_embeddings_api_mock

    return _create_mock


@pytest.fixture
def status_error_factory():
    """Factory for OpenAI status errors such as RateLimitError."""
    return make_status_error


@pytest.fixture
def mock_openai_client():
    """OpenAI client double whose chat completions answer "ok"."""
    client = Mock()
    client.chat.completions.create.return_value = create_mock_chat_response("ok")
    return client


@pytest.fixture
def embedding_service_factory():
    """Factory for creating EmbeddingService instances with different configurations."""

    def _create_service(api_key=None, model=None):  # noqa: ANN202
        api_key = api_key or TestConstants.TEST_API_KEY
        if model is not None:
            return EmbeddingService(api_key=api_key, model=model)
        return EmbeddingService(api_key=api_key)

    return _create_service


@pytest.fixture
def embedding_service(embedding_service_factory):
    """Default EmbeddingService with test API key for most tests."""
    return embedding_service_factory()


# ---------------------------------------------------------------------------
# Text processing and vector store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def text_chunker_small():
    """Text chunker configured for small chunks (100/20)."""
    return TextChunker(
        chunk_size=TestConstants.SMALL_CHUNK_SIZE,
        overlap=TestConstants.SMALL_CHUNK_OVERLAP,
    )


@pytest.fixture(scope="session")
def mock_embedding_service():
    """Pre-configured MockEmbeddingService for consistent test embeddings."""
    return MockEmbeddingService()


@pytest.fixture
def mock_embeddings(mock_embedding_service):
    """Factory function to create mock embeddings using the service."""
    return mock_embedding_service.get_embedding


@pytest.fixture
def temp_faiss_store(tmp_path) -> FaissVectorStore:
    """Create temporary FAISS vector store for testing."""
    return FaissVectorStore(tmp_path / "faiss_store")


@pytest.fixture
def sample_text_chunks():
    """Create sample knowledge chunks with text and metadata only."""
    texts = [
        "The general meeting of owners elects the chairman of the association.",
        "Capital repairs are financed from the savings account of the building.",
        "Owners pay for the maintenance of common property every month.",
        "The acceptance act lists the technical documentation handed over.",
        "Current repairs are planned by the board once a year.",
    ]
    return [
        KnowledgeChunk(
            content=text,
            metadata={
                "source": f"law_{i // 3}.txt",
                "chunk_id": i,
                "start_char": i * 100,
                "end_char": (i + 1) * 100,
                "length": len(text),
            },
        )
        for i, text in enumerate(texts)
    ]


@pytest.fixture
def sample_embedded_chunks(sample_text_chunks, mock_embeddings):
    """Create sample knowledge chunks with embeddings based on text chunks."""
    return [
        KnowledgeChunk(
            content=chunk.content,
            metadata=dict(chunk.metadata),
            embedding=mock_embeddings(chunk.content),
        )
        for chunk in sample_text_chunks
    ]


@pytest.fixture
def corpus_dir(tmp_path) -> Path:
    """Small knowledge base corpus on disk."""
    corpus = tmp_path / "knowledge_base"
    (corpus / "laws").mkdir(parents=True)
    (corpus / "laws" / "housing.txt").write_text(
        "The association of property owners manages the common property. "
        "The chairman is elected by the general meeting.",
        encoding="utf-8",
    )
    (corpus / "faq.md").write_text(
        "Capital repairs are financed from the savings account.",
        encoding="utf-8",
    )
    (corpus / "ignored.docx").write_bytes(b"not indexed")
    return corpus


# ---------------------------------------------------------------------------
# Templates, stores and dialogue
# ---------------------------------------------------------------------------


@pytest.fixture
def registry_path(tmp_path) -> Path:
    """Templates registry written to disk."""
    path = tmp_path / "templates.json"
    path.write_text(json.dumps(SAMPLE_REGISTRY, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def template_catalog() -> TemplateCatalog:
    """Catalog with one authored and one question-less template."""
    return TemplateCatalog([parse_template(raw) for raw in SAMPLE_REGISTRY["templates"]])


@pytest.fixture
def fake_gateway() -> FakeGateway:
    """Scripted gateway with no queued responses."""
    return FakeGateway()


@pytest.fixture
def fake_model_factory():
    """Factory for scripted model handles."""
    return FakeModel


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def schema_resolver(template_catalog, fake_gateway, recording_sleep, tmp_path):
    """Resolver over the sample catalog that never really sleeps."""
    return TemplateSchemaResolver(
        template_catalog,
        fake_gateway,
        preview_dir=tmp_path / "previews",
        sleep=recording_sleep,
    )


@pytest.fixture
def state_store(tmp_path) -> ConversationStateStore:
    return ConversationStateStore(tmp_path / "docdraft.db")


@pytest.fixture
def history_store(tmp_path) -> ChatHistoryStore:
    return ChatHistoryStore(tmp_path / "docdraft.db")


@pytest.fixture
def record_store(tmp_path) -> DocumentRecordStore:
    return DocumentRecordStore(tmp_path / "docdraft.db")


@pytest.fixture
def file_store(tmp_path) -> GeneratedFileStore:
    return GeneratedFileStore(tmp_path / "generated")


@pytest.fixture
def template_dir(tmp_path) -> Path:
    """Directory holding the .docx template of the authored sample."""
    directory = tmp_path / "docx"
    build_docx_template(directory / TestConstants.ACT_TEMPLATE_ID)
    return directory


@pytest.fixture
def dialogue(  # noqa: PLR0913,PLR0917
    template_catalog,
    schema_resolver,
    fake_gateway,
    template_dir,
    state_store,
    history_store,
    record_store,
    file_store,
) -> DialogueStateMachine:
    """Dialogue state machine wired to the scripted gateway."""
    return DialogueStateMachine(
        catalog=template_catalog,
        resolver=schema_resolver,
        classifier=IntentClassifier(fake_gateway),
        extractor=AnswerExtractor(fake_gateway, schema_resolver),
        renderer=DocxRenderer(template_dir),
        states=state_store,
        history=history_store,
        records=record_store,
        files=file_store,
        max_failed_attempts=3,
    )
