"""docdraft - conversational document drafting assistant."""

from .assistant import Assistant, build_assistant
from .dialogue import DialogueStateMachine
from .document_processing import DocumentLoader, TextChunker
from .embeddings import EmbeddingService
from .extraction import AnswerExtractor
from .gateway import ChatModel, ModelGateway, RetryPolicy
from .intent import IntentClassifier
from .knowledge_index import KnowledgeIndex
from .models import ConversationState, Intent, IntentKind, KnowledgeChunk, TurnResponse
from .rag import RAGAnsweringService
from .templates import TemplateCatalog, TemplateSchemaResolver
from .vector_store import FaissVectorStore

__all__ = [
    "AnswerExtractor",
    "Assistant",
    "ChatModel",
    "ConversationState",
    "DialogueStateMachine",
    "DocumentLoader",
    "EmbeddingService",
    "FaissVectorStore",
    "Intent",
    "IntentClassifier",
    "IntentKind",
    "KnowledgeChunk",
    "KnowledgeIndex",
    "ModelGateway",
    "RAGAnsweringService",
    "RetryPolicy",
    "TemplateCatalog",
    "TemplateSchemaResolver",
    "TextChunker",
    "TurnResponse",
    "build_assistant",
]
