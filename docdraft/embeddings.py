"""OpenAI embeddings service."""

import backoff
import numpy as np
import openai
from openai import OpenAI

from .config import config

logger = config.get_logger(__name__)

RATE_LIMIT_RETRIES = 3


def _log_backoff(details: dict) -> None:
    logger.warning(
        "Embedding rate limit hit (try %d); retrying in %.0fs",
        details["tries"],
        details["wait"],
    )


class EmbeddingService:
    """Handles OpenAI embeddings generation."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        """Initialize the EmbeddingService with OpenAI API key and model.

        Args:
            api_key: OpenAI API key. If None,
                reads from OPENAI_API_KEY environment variable.
            model: Embedding model name. If None, uses config.EMBEDDING_MODEL.
        """
        api_key = api_key or config.get_openai_api_key()
        default_headers = config.get_api_headers()
        self.client = OpenAI(
            api_key=api_key,
            base_url=config.OPENAI_BASE_URL,
            timeout=config.OPENAI_TIMEOUT,
            default_headers=default_headers or None,
        )
        self.model = model or config.EMBEDDING_MODEL

    @backoff.on_exception(
        backoff.expo,
        openai.RateLimitError,
        max_tries=RATE_LIMIT_RETRIES,
        factor=2,
        jitter=None,
        on_backoff=_log_backoff,
    )
    def _create(self, payload: str | list[str]) -> list[np.ndarray]:
        """Call the embeddings endpoint, backing off on rate limits.

        Returns:
            One vector per input text, in input order.
        """
        response = self.client.embeddings.create(
            model=self.model,
            input=payload,
        )
        return [np.array(data.embedding) for data in response.data]

    def get_embedding(self, text: str) -> np.ndarray:
        """Get embedding for a single text.

        Args:
            text: The input text to generate an embedding for.

        Returns:
            np.ndarray: The embedding vector for the input text.
        """
        try:
            embedding = self._create(text)[0]
        except Exception:
            logger.exception("Error generating embedding")
            raise
        else:
            return embedding

    def get_embeddings_batch(
        self,
        texts: list[str],
        batch_size: int = 100,
    ) -> list[np.ndarray]:
        """Get embeddings for multiple texts in batches.

        Args:
            texts: List of input texts to generate embeddings for.
            batch_size: Number of texts to process in each batch.

        Returns:
            list[np.ndarray]: List of embedding vectors for the input texts.
        """
        embeddings = []

        for i in range(0, len(texts), batch_size):
            batch_texts = texts[i : i + batch_size]
            try:
                embeddings.extend(self._create(batch_texts))
                logger.info("Generated embeddings for batch %d", i // batch_size + 1)
            except Exception:
                logger.exception("Error generating batch embeddings")
                raise

        return embeddings
