"""Persisted similarity index over the knowledge base corpus."""

from __future__ import annotations

import shutil
import tempfile
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from .config import config
from .document_processing import DocumentLoader, TextChunker
from .errors import IndexBuildFailure
from .vector_store import FaissVectorStore

if TYPE_CHECKING:
    from .embeddings import EmbeddingService
    from .models import KnowledgeChunk

logger = config.get_logger(__name__)

_build_locks: dict[Path, threading.Lock] = {}
_build_locks_guard = threading.Lock()


def _build_lock_for(index_dir: Path) -> threading.Lock:
    key = Path(index_dir).resolve()
    with _build_locks_guard:
        lock = _build_locks.get(key)
        if lock is None:
            lock = _build_locks[key] = threading.Lock()
        return lock


class KnowledgeIndex:
    """Builds, loads and searches the knowledge base index.

    The index lives in ``index_dir``. Rebuilds happen in a unique sibling
    staging directory and replace the live one in a single swap, so searches keep
    using the previous index until the new one is complete.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        index_dir: Path | None = None,
        corpus_dir: Path | None = None,
        chunker: TextChunker | None = None,
    ) -> None:
        """Initialize the index without touching the disk.

        Args:
            embedding_service: Service used to embed chunks and queries.
            index_dir: Directory holding the persisted index.
            corpus_dir: Directory with the source documents.
            chunker: Text chunker. If None, uses the configured sizes.
        """
        self.embedding_service = embedding_service
        self.index_dir = Path(index_dir or config.INDEX_DIR)
        self.corpus_dir = Path(corpus_dir or config.KNOWLEDGE_BASE_DIR)
        self.chunker = chunker or TextChunker(
            chunk_size=config.CHUNK_SIZE,
            overlap=config.CHUNK_OVERLAP,
        )
        self._store: FaissVectorStore | None = None
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        """Number of searchable chunks."""
        with self._lock:
            return 0 if self._store is None else self._store.size

    def open(self) -> None:
        """Load the persisted index, building it from the corpus if needed.

        A failed build is logged and leaves the index empty.
        """
        if self.index_dir.exists():
            try:
                store = FaissVectorStore(self.index_dir)
                if store.load():
                    with self._lock:
                        self._store = store
                    logger.info("Knowledge index loaded with %d chunks", store.size)
                    return
            except Exception:
                logger.exception(
                    "Could not load knowledge index from %s", self.index_dir
                )

        try:
            self.rebuild()
        except IndexBuildFailure:
            logger.exception("Knowledge index unavailable; answers use no context")

    def rebuild(self) -> int:
        """Rebuild the index from the corpus and swap it in.

        Every handle on the same ``index_dir`` in this process shares one
        build lock, and each build stages into its own directory.

        Returns:
            Number of chunks in the new index.

        Raises:
            IndexBuildFailure: If the corpus could not be indexed. The
                previous index stays in use.
        """
        with _build_lock_for(self.index_dir):
            self.index_dir.parent.mkdir(parents=True, exist_ok=True)
            staging_dir = Path(
                tempfile.mkdtemp(
                    prefix=f"{self.index_dir.name}.staging-",
                    dir=self.index_dir.parent,
                )
            )
            try:
                chunk_count = self._build(staging_dir)
                self._swap(staging_dir)
            except Exception as e:
                shutil.rmtree(staging_dir, ignore_errors=True)
                msg = f"Building the knowledge index from {self.corpus_dir} failed"
                raise IndexBuildFailure(msg) from e

            logger.info("Knowledge index rebuilt with %d chunks", chunk_count)
            return chunk_count

    def _build(self, target_dir: Path) -> int:
        """Chunk, embed and store the whole corpus in ``target_dir``.

        Returns:
            Number of chunks stored.
        """
        documents = DocumentLoader.find_documents(self.corpus_dir)
        if not documents:
            logger.warning("No documents found in %s", self.corpus_dir)

        chunks: list[KnowledgeChunk] = []
        for path in documents:
            text = DocumentLoader.load_document(path)
            source = str(path.relative_to(self.corpus_dir))
            chunks.extend(self.chunker.chunk_text(text, source=source))

        store = FaissVectorStore(target_dir)
        if chunks:
            embeddings = self.embedding_service.get_embeddings_batch(
                [chunk.content for chunk in chunks]
            )
            for chunk, embedding in zip(chunks, embeddings, strict=True):
                chunk.embedding = embedding
            store.add_chunks(chunks)
            store.save()
        return len(chunks)

    def _swap(self, staging_dir: Path) -> None:
        """Replace the live index directory with the staged one."""
        retired_dir = staging_dir.with_name(f"{staging_dir.name}.old")

        with self._lock:
            had_index = self.index_dir.exists()
            if had_index:
                self.index_dir.rename(retired_dir)
            try:
                staging_dir.rename(self.index_dir)
            except OSError:
                if had_index:
                    retired_dir.rename(self.index_dir)
                raise
            store = FaissVectorStore(self.index_dir)
            store.load()
            self._store = store

        shutil.rmtree(retired_dir, ignore_errors=True)

        with self._lock:
            if self.index_dir.exists():
                self.index_dir.rename(retired_dir)
            staging_dir.rename(self.index_dir)
            store = FaissVectorStore(self.index_dir)
            store.load()
            self._store = store

        shutil.rmtree(retired_dir, ignore_errors=True)

    def search(
        self, query: str, top_k: int | None = None
    ) -> list[tuple[KnowledgeChunk, float]]:
        """Find the chunks most similar to a query.

        Returns:
            Up to ``top_k`` (chunk, score) pairs, best first. Empty when the
            index is empty.
        """
        top_k = config.RAG_TOP_K if top_k is None else top_k
        if top_k <= 0 or self.size == 0:
            return []

        query_embedding = self.embedding_service.get_embedding(query)
        with self._lock:
            if self._store is None:
                return []
            return self._store.search(query_embedding, top_k=top_k)
