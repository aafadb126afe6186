"""Configuration management for the docdraft assistant."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)


class Config:
    """Application configuration loaded from environment variables."""

    # OpenAI Configuration
    @classmethod
    def get_openai_api_key(cls) -> str:
        """Get OpenAI API key from environment variables.

        Returns:
            OpenAI API key from environment or empty string if not set.
        """
        return os.getenv("OPENAI_API_KEY", "")

    OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")
    OPENAI_TIMEOUT: float = float(os.getenv("OPENAI_TIMEOUT", "60"))

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    OPENAI_LOG_LEVEL: str = os.getenv("OPENAI_LOG_LEVEL", "WARNING").upper()

    # Chat Model Configuration
    CHAT_MODEL: str = os.getenv("CHAT_MODEL", "gpt-4.1")
    FALLBACK_CHAT_MODEL: str = os.getenv("FALLBACK_CHAT_MODEL", "gpt-4.1-mini")
    CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "2000"))
    CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.2"))
    MODEL_MAX_ATTEMPTS: int = int(os.getenv("MODEL_MAX_ATTEMPTS", "3"))

    # RAG Configuration
    CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "2000"))
    CHUNK_OVERLAP: int = int(os.getenv("CHUNK_OVERLAP", "200"))
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    RAG_TOP_K: int = int(os.getenv("RAG_TOP_K", "3"))
    HISTORY_LIMIT: int = int(os.getenv("HISTORY_LIMIT", "10"))
    KNOWLEDGE_BASE_DIR: Path = Path(os.getenv("KNOWLEDGE_BASE_DIR", "knowledge_base"))
    INDEX_DIR: Path = Path(os.getenv("INDEX_DIR", "data/index"))

    # Templates and generated documents
    TEMPLATES_REGISTRY_PATH: Path = Path(
        os.getenv("TEMPLATES_REGISTRY_PATH", "data/templates.json")
    )
    TEMPLATE_DOCX_DIR: Path = Path(
        os.getenv("TEMPLATE_DOCX_DIR", "knowledge_base/templates/docx")
    )
    TEMPLATE_PREVIEW_DIR: Path = Path(
        os.getenv("TEMPLATE_PREVIEW_DIR", "knowledge_base/templates/pdf_previews")
    )
    GENERATED_DOCUMENTS_DIR: Path = Path(
        os.getenv("GENERATED_DOCUMENTS_DIR", "data/generated_documents")
    )

    # Dialogue state, history and document records
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", "data/docdraft.db"))
    MAX_FAILED_ATTEMPTS: int = int(os.getenv("MAX_FAILED_ATTEMPTS", "3"))

    # API Header Configuration
    API_USER_AGENT: str = os.getenv("API_USER_AGENT", "docdraft/1.0")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration values.

        Raises:
            ValueError: If OPENAI_API_KEY is not set.
        """
        if not cls.get_openai_api_key():
            msg = (
                "OPENAI_API_KEY is required. Please set it in .env file or environment."
            )
            raise ValueError(msg)

    @classmethod
    def setup_logging(cls) -> None:
        """Setup basic logging configuration.

        Configure logging once at application startup with:
        - Console output for all levels
        - Simple, readable format
        - Configurable level via environment variable
        """
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )

        # Configure third-party library log levels via environment variables
        logging.getLogger("openai").setLevel(
            getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
        )

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    @classmethod
    def get_api_headers(cls) -> dict[str, str]:
        """Build default headers for outbound API calls.

        Returns:
            Mapping of header names to values used on outbound HTTP requests.
        """
        headers: dict[str, str] = {}

        if cls.API_USER_AGENT:
            headers["User-Agent"] = cls.API_USER_AGENT

        return headers


config = Config()
