"""FAISS-backed vector storage with SQLite metadata."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING

import faiss
import numpy as np

from docdraft.config import config
from docdraft.vector_store.base import CHUNK_COLUMNS, BaseSQLiteStore

if TYPE_CHECKING:
    from docdraft.models import KnowledgeChunk

logger = config.get_logger(__name__)

INDEX_FILE_NAME = "index.faiss"
METADATA_FILE_NAME = "chunks.db"


class FaissVectorStore(BaseSQLiteStore):
    """Vector storage using FAISS for embeddings and SQLite for metadata."""

    def __init__(self, store_dir: Path) -> None:
        """Configure a store whose files live in ``store_dir``."""
        self.store_dir = Path(store_dir)
        self.store_dir.mkdir(exist_ok=True, parents=True)
        self.index_path = self.store_dir / INDEX_FILE_NAME
        self.index: faiss.IndexIDMap | None = None
        super().__init__(self.store_dir / METADATA_FILE_NAME)

    @property
    def size(self) -> int:
        """Number of vectors currently searchable."""
        return 0 if self.index is None else int(self.index.ntotal)

    @staticmethod
    def _normalize_embedding(embedding: np.ndarray) -> np.ndarray:
        """Normalize embedding for cosine similarity using inner product search.

        Returns:
            Normalized embedding vector.
        """
        vector = np.array(embedding, dtype="float32")
        norm = np.linalg.norm(vector)
        if norm == 0:
            return vector
        faiss.normalize_L2(vector.reshape(1, -1))
        return vector

    def _init_index(self, dimension: int) -> None:
        """Initialize FAISS index."""
        base_index = faiss.IndexFlatIP(dimension)
        self.index = faiss.IndexIDMap(base_index)
        logger.info("Initialized FAISS IndexIDMap with dimension %d", dimension)

    def add_chunks(self, chunks: list[KnowledgeChunk]) -> None:
        """Add chunks and embeddings to FAISS index and metadata store.

        Raises:
            ValueError: If embedding dimension mismatches the index.
        """
        if not chunks:
            return

        embeddings_batch: list[np.ndarray] = []
        vector_ids: list[int] = []

        with sqlite3.connect(str(self.db_path)) as conn:
            cursor = conn.cursor()

            for chunk in chunks:
                if chunk.embedding is None:
                    logger.warning(
                        "Skipping chunk %s without embedding",
                        chunk.metadata.get("chunk_id"),
                    )
                    continue

                embedding = self._normalize_embedding(chunk.embedding)
                if self.index is None:
                    self._init_index(embedding.shape[0])
                elif embedding.shape[0] != self.index.d:
                    msg = (
                        f"Embedding dimension {embedding.shape[0]} does not match "
                        f"FAISS index dimension {self.index.d}"
                    )
                    raise ValueError(msg)

                document_id = self._upsert_document(cursor, chunk.source)
                vector_id = self._insert_chunk_row(cursor, document_id, chunk)
                chunk.metadata["vector_id"] = vector_id

                embeddings_batch.append(embedding)
                vector_ids.append(vector_id)

            conn.commit()

        if embeddings_batch and self.index is not None:
            vectors = np.vstack(embeddings_batch).astype("float32")
            ids_array = np.asarray(vector_ids, dtype="int64")
            self.index.add_with_ids(vectors, ids_array)  # pyright: ignore[reportCallIssue]
            logger.info("Added %d vectors to FAISS index", len(vector_ids))
        else:
            logger.warning("No embeddings added to FAISS index")

    def search(
        self,
        query_embedding: np.ndarray,
        top_k: int = 3,
    ) -> list[tuple[KnowledgeChunk, float]]:
        """Search similar chunks using FAISS index.

        Returns:
            Ranked list of (KnowledgeChunk, score) tuples.
        """
        index = self.index
        if index is None or index.ntotal == 0 or top_k <= 0:
            return []

        normalized_query = self._normalize_embedding(query_embedding)
        scores, vector_ids = index.search(
            normalized_query.reshape(1, -1),
            min(top_k, index.ntotal),
        )  # pyright: ignore[reportCallIssue]

        results: list[tuple[KnowledgeChunk, float]] = []
        with sqlite3.connect(str(self.db_path)) as conn:
            cursor = conn.cursor()
            for score, vector_id in zip(scores[0], vector_ids[0], strict=True):
                if int(vector_id) == -1:  # faiss returns -1 for empty results
                    continue
                chunk = self._fetch_chunk_by_vector_id(cursor, int(vector_id))
                if chunk:
                    results.append((chunk, float(score)))

        return results

    def save(self) -> None:
        """Persist FAISS index to disk."""
        index = self.index
        if index is None:
            logger.warning("No FAISS index to save")
            return

        faiss.write_index(index, str(self.index_path))
        logger.info("Saved FAISS index to %s", self.index_path)

    def load(self) -> bool:
        """Load the FAISS index from disk.

        Returns:
            True when a persisted index was found and loaded.

        Raises:
            RuntimeError: If the persisted index disagrees with the metadata.
        """
        if not self.index_path.exists():
            logger.warning("FAISS index not found at %s", self.index_path)
            self.index = None
            return False

        loaded_index = faiss.read_index(str(self.index_path))
        if not isinstance(loaded_index, (faiss.IndexIDMap, faiss.IndexIDMap2)):
            logger.warning(
                "Loaded FAISS index is %s; wrapping with IndexIDMap to enable IDs",
                type(loaded_index).__name__,
            )
            loaded_index = faiss.IndexIDMap(loaded_index)

        chunk_count = self.count_chunks()
        if loaded_index.ntotal != chunk_count:
            msg = (
                f"FAISS index holds {loaded_index.ntotal} vectors "
                f"but metadata has {chunk_count} chunks"
            )
            raise RuntimeError(msg)

        self.index = loaded_index
        logger.info(
            "Loaded FAISS index from %s with %d vectors",
            self.index_path,
            loaded_index.ntotal,
        )
        return True

    def all_chunks(self) -> list[KnowledgeChunk]:
        """Return every stored chunk in insertion order.

        Returns:
            All chunks from the metadata store.
        """
        with sqlite3.connect(str(self.db_path)) as conn:
            rows = conn.execute(
                f"""
                SELECT {CHUNK_COLUMNS}
                FROM chunks c
                JOIN documents d ON c.document_id = d.id
                ORDER BY c.id
                """  # noqa: S608
            ).fetchall()
        return [self._build_chunk_from_row(row) for row in rows]
