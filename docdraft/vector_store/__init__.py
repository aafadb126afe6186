"""Vector store for knowledge chunks."""

from .faiss_store import FaissVectorStore

__all__ = ["FaissVectorStore"]
