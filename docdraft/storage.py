"""SQLite persistence for dialogue state, chat history and generated documents."""

import datetime
import json
import sqlite3
from pathlib import Path

from .config import config
from .models import (
    ROLE_USER,
    ChatMessage,
    ConversationState,
    GeneratedDocumentRecord,
)

logger = config.get_logger(__name__)


def utc_now() -> str:
    """Current UTC time in ISO 8601 format."""  # noqa: DOC201
    return datetime.datetime.now(tz=datetime.UTC).isoformat()


class SQLiteStore:
    """Base class owning one SQLite file and its schema."""

    schema: tuple[str, ...] = ()

    def __init__(self, db_path: Path | None = None) -> None:
        """Open the database and ensure the schema exists."""
        self.db_path = Path(db_path or config.DATABASE_PATH)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        with sqlite3.connect(str(self.db_path)) as conn:
            for statement in self.schema:
                conn.execute(statement)
            conn.commit()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))


class ConversationStateStore(SQLiteStore):
    """One dialogue state row per user, stored as a JSON payload."""

    schema = (
        """
        CREATE TABLE IF NOT EXISTS conversation_states (
            user_id TEXT PRIMARY KEY,
            payload TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
    )

    def load(self, user_id: str) -> ConversationState:
        """Load a user's state.

        Returns:
            The stored state, or an idle state when none was saved.
        """
        with self._connect() as conn:
            row = conn.execute(
                "SELECT payload FROM conversation_states WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return ConversationState(user_id=user_id)
        return ConversationState.from_dict(json.loads(row[0]))

    def save(self, state: ConversationState) -> None:
        """Persist a user's state, replacing the previous one."""
        payload = json.dumps(state.to_dict(), ensure_ascii=False)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO conversation_states (user_id, payload, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
                """,
                (state.user_id, payload, utc_now()),
            )
            conn.commit()

    def clear(self, user_id: str) -> None:
        """Forget a user's state."""
        with self._connect() as conn:
            conn.execute("DELETE FROM conversation_states WHERE user_id = ?", (user_id,))
            conn.commit()


class ChatHistoryStore(SQLiteStore):
    """Append-only message history split into channels."""

    schema = (
        """
        CREATE TABLE IF NOT EXISTS chat_messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            role TEXT NOT NULL,
            content TEXT NOT NULL,
            channel TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_chat_messages_user_channel
        ON chat_messages(user_id, channel, id)
        """,
    )

    def append(self, user_id: str, role: str, content: str, channel: str) -> None:
        """Add a message to the end of a user's channel."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO chat_messages (user_id, role, content, channel, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, role, content, channel, utc_now()),
            )
            conn.commit()

    def recent(self, user_id: str, channel: str, limit: int) -> list[ChatMessage]:
        """Return the last ``limit`` messages of a channel, oldest first.

        Leading model messages are dropped so the window opens with a user turn.

        Returns:
            Messages in creation order.
        """
        if limit <= 0:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT user_id, role, content, channel, created_at
                FROM chat_messages
                WHERE user_id = ? AND channel = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (user_id, channel, limit),
            ).fetchall()

        messages = [ChatMessage(*row) for row in reversed(rows)]
        while messages and messages[0].role != ROLE_USER:
            messages.pop(0)
        return messages


class DocumentRecordStore(SQLiteStore):
    """Records of generated documents, scoped to their owner."""

    schema = (
        """
        CREATE TABLE IF NOT EXISTS generated_documents (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            template_id TEXT NOT NULL,
            storage_path TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_generated_documents_user
        ON generated_documents(user_id, created_at)
        """,
    )

    def create(
        self,
        record_id: str,
        user_id: str,
        template_id: str,
        storage_path: str,
    ) -> GeneratedDocumentRecord:
        """Create a record; creating the same id again returns the first one.

        Returns:
            The stored record.

        Raises:
            ValueError: If the id already belongs to another user.
        """
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO generated_documents
                    (id, user_id, template_id, storage_path, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (record_id, user_id, template_id, storage_path, utc_now()),
            )
            conn.commit()

        record = self.find(record_id, user_id)
        if record is None:
            msg = f"Document record {record_id} belongs to another user"
            raise ValueError(msg)
        return record

    def find(self, record_id: str, user_id: str) -> GeneratedDocumentRecord | None:
        """Look up a record owned by ``user_id``.

        Returns:
            The record, or None if it does not exist or is not the user's.
        """
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT id, user_id, template_id, storage_path, created_at
                FROM generated_documents
                WHERE id = ? AND user_id = ?
                """,
                (record_id, user_id),
            ).fetchone()
        return GeneratedDocumentRecord(*row) if row else None

    def list_for_user(self, user_id: str) -> list[GeneratedDocumentRecord]:
        """All records of a user, newest first."""  # noqa: DOC201
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, user_id, template_id, storage_path, created_at
                FROM generated_documents
                WHERE user_id = ?
                ORDER BY created_at DESC
                """,
                (user_id,),
            ).fetchall()
        return [GeneratedDocumentRecord(*row) for row in rows]


class GeneratedFileStore:
    """Stores rendered document files on disk."""

    def __init__(self, base_dir: Path | None = None) -> None:
        self.base_dir = Path(base_dir or config.GENERATED_DOCUMENTS_DIR)
        self.base_dir.mkdir(exist_ok=True, parents=True)

    def write(self, record_id: str, blob: bytes, suffix: str = ".docx") -> Path:
        """Write a document, replacing any earlier file with the same id.

        Returns:
            Path of the stored file.
        """
        path = self.base_dir / f"{record_id}{suffix}"
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_bytes(blob)
        tmp_path.replace(path)
        logger.info("Stored generated document %s (%d bytes)", path, len(blob))
        return path

    @staticmethod
    def read(path: str | Path) -> bytes:
        """Read a stored document.

        Returns:
            File content.
        """
        return Path(path).read_bytes()
