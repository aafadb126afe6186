"""Document loading and text chunking functionality."""

from pathlib import Path

import pypdf

from .config import config
from .models import KnowledgeChunk

logger = config.get_logger(__name__)

SUPPORTED_EXTENSIONS = (".pdf", ".txt", ".md")

# Preferred split points, strongest first.
BOUNDARIES = ("\n\n", "\n", ". ", " ")


class DocumentLoader:
    """Handles loading of PDF, TXT and Markdown documents."""

    @staticmethod
    def load_pdf(file_path: Path) -> str:
        """Load text content from a PDF file.

        Returns:
            The extracted text content from the PDF as a string.
        """
        try:
            with file_path.open("rb") as file:
                pdf_reader = pypdf.PdfReader(file)
                pages = [page.extract_text() or "" for page in pdf_reader.pages]
        except Exception:
            logger.exception("Error loading PDF %s", file_path)
            raise
        else:
            return "\n\n".join(pages)

    @staticmethod
    def load_txt(file_path: Path) -> str:
        """Load text content from a plain text or Markdown file.

        Returns:
            The file content as a string.
        """
        try:
            text = file_path.read_text(encoding="utf-8")
        except Exception:
            logger.exception("Error loading text file %s", file_path)
            raise
        else:
            return text

    @classmethod
    def load_document(cls, file_path: Path) -> str:
        """Load document based on file extension.

        Args:
            file_path: Path to the document file.

        Returns:
            The text content of the document as a string.

        Raises:
            ValueError: If the file type is not supported.
        """
        file_ext = file_path.suffix.lower()
        if file_ext == ".pdf":
            return cls.load_pdf(file_path)
        if file_ext in {".txt", ".md"}:
            return cls.load_txt(file_path)
        msg = f"Unsupported file type: {file_ext}"
        raise ValueError(msg)

    @staticmethod
    def find_documents(corpus_dir: Path) -> list[Path]:
        """List supported documents under a directory, recursively.

        Returns:
            Sorted list of document paths.
        """
        if not corpus_dir.exists():
            return []
        return sorted(
            path
            for path in corpus_dir.rglob("*")
            if path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS
        )


class TextChunker:
    """Splits text into overlapping windows that end on natural breaks."""

    def __init__(self, chunk_size: int = 2000, overlap: int = 200) -> None:
        """Initialize the TextChunker with chunk size and overlap.

        Args:
            chunk_size: Target size of each text chunk, in characters.
            overlap: Number of characters shared by consecutive chunks.

        Raises:
            ValueError: If the overlap does not leave room for progress.
        """
        if chunk_size <= 0 or not 0 <= overlap < chunk_size // 2:
            msg = "overlap must be non-negative and below half of chunk_size"
            raise ValueError(msg)
        self.chunk_size = chunk_size
        self.overlap = overlap

    def _find_end(self, text: str, start: int) -> int:
        """Pick the end of the window starting at ``start``.

        Returns:
            Exclusive end offset of the chunk.
        """
        end = start + self.chunk_size
        if end >= len(text):
            return len(text)

        window = text[start:end]
        for boundary in BOUNDARIES:
            cut = window.rfind(boundary)
            # Only accept breaks in the second half of the window
            if cut >= self.chunk_size // 2:
                return start + cut + len(boundary)
        return end

    def chunk_text(self, text: str, source: str = "document") -> list[KnowledgeChunk]:
        """Split text into overlapping chunks.

        Returns:
            A list of KnowledgeChunk objects representing the text chunks.
        """
        chunks = []
        start = 0
        chunk_id = 0

        while start < len(text):
            end = self._find_end(text, start)
            chunk_text = text[start:end]

            if chunk_text.strip():
                chunks.append(
                    KnowledgeChunk(
                        content=chunk_text.strip(),
                        metadata={
                            "source": source,
                            "chunk_id": chunk_id,
                            "start_char": start,
                            "end_char": end,
                            "length": len(chunk_text.strip()),
                        },
                    )
                )
                chunk_id += 1

            if end >= len(text):
                break
            start = end - self.overlap

        logger.info("Text split into %d chunks", len(chunks))
        return chunks
