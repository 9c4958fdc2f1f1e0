"""SQLite database management for documents and sections."""

import json
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import numpy as np

from docsync.errors import StoreError
from docsync.indexer.models import Document, Section

SCHEMA_VERSION = "1.0"

SCHEMA_SQL = """
-- docsync Store Schema v1.0
-- Documents are keyed by path; sections are owned by exactly one document.

PRAGMA journal_mode = WAL;

CREATE TABLE IF NOT EXISTS documents (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    path         TEXT NOT NULL UNIQUE,
    checksum     TEXT NOT NULL,
    meta         TEXT,
    parent_path  TEXT,
    version      TEXT,
    created_at   TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at   TEXT NOT NULL DEFAULT (datetime('now')),
    last_refresh TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_documents_parent ON documents(parent_path);
CREATE INDEX IF NOT EXISTS idx_documents_version ON documents(version);

CREATE TABLE IF NOT EXISTS sections (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id INTEGER NOT NULL,
    slug        TEXT,
    heading     TEXT,
    content     TEXT NOT NULL,
    token_count INTEGER NOT NULL,
    embedding   BLOB NOT NULL,
    FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_sections_document ON sections(document_id);

-- Metadata table for store versioning
CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT
);

INSERT OR REPLACE INTO meta (key, value) VALUES ('schema_version', '1.0');
INSERT OR IGNORE INTO meta (key, value) VALUES ('created_at', datetime('now'));
"""


def _parse_timestamp(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        path=row["path"],
        checksum=row["checksum"],
        meta=json.loads(row["meta"]) if row["meta"] else None,
        parent_path=row["parent_path"],
        version=row["version"],
        created_at=_parse_timestamp(row["created_at"]),
        updated_at=_parse_timestamp(row["updated_at"]),
        last_refresh=_parse_timestamp(row["last_refresh"]),
    )


class Database:
    """SQLite store for documents and their embedded sections.

    Every public write runs in its own transaction, so a document row and its
    sections are always committed together. ``sqlite3.Error`` never escapes:
    it is re-raised as ``StoreError``.
    """

    def __init__(self, db_path: Path, dimension: int):
        """
        Initialize the store.

        Args:
            db_path: Path to the SQLite database file
            dimension: Fixed dimension of section embeddings
        """
        self.db_path = db_path
        self.dimension = dimension
        self._local = threading.local()
        self._write_lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.db_path))
            except (OSError, sqlite3.Error) as e:
                raise StoreError(f"Cannot open store at {self.db_path}: {e}") from e
            conn.row_factory = sqlite3.Row
            # Per connection, not persisted in the file
            conn.execute("PRAGMA foreign_keys = ON")
            self._local.conn = conn
        return self._local.conn

    @contextmanager
    def _read_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor for read operations."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            cursor.close()

    @contextmanager
    def _write_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor for a write transaction with locking."""
        with self._write_lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreError(str(e)) from e
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def initialize(self) -> None:
        """Initialize the schema and pin the embedding dimension.

        Raises:
            StoreError: If the store was created with another dimension.
        """
        with self._write_cursor() as cursor:
            cursor.executescript(SCHEMA_SQL)
            cursor.execute("SELECT value FROM meta WHERE key = 'embedding_dimension'")
            row = cursor.fetchone()
            if row is None:
                cursor.execute(
                    "INSERT INTO meta (key, value) VALUES ('embedding_dimension', ?)",
                    (str(self.dimension),),
                )
            elif int(row["value"]) != self.dimension:
                raise StoreError(
                    f"Store {self.db_path} holds {row['value']}-dimensional embeddings, "
                    f"configured dimension is {self.dimension}"
                )

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self._local, "conn") and self._local.conn:
            self._local.conn.close()
            self._local.conn = None

    def clear(self) -> None:
        """Delete every document and section."""
        with self._write_cursor() as cursor:
            cursor.execute("DELETE FROM sections")
            cursor.execute("DELETE FROM documents")

    # Document reads

    def list_documents(self) -> list[Document]:
        """List all documents ordered by path."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT * FROM documents ORDER BY path")
            return [_row_to_document(row) for row in cursor.fetchall()]

    def get_documents_by_path(self) -> dict[str, Document]:
        """Return all documents indexed by path."""
        return {doc.path: doc for doc in self.list_documents()}

    def get_document_by_path(self, path: str) -> Document | None:
        """Get a document by its path."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT * FROM documents WHERE path = ?", (path,))
            row = cursor.fetchone()
            return _row_to_document(row) if row else None

    # Section reads

    def get_sections(self, document_id: int) -> list[Section]:
        """Get all sections of a document in insertion order."""
        with self._read_cursor() as cursor:
            cursor.execute(
                "SELECT * FROM sections WHERE document_id = ? ORDER BY id",
                (document_id,),
            )
            return [
                Section(
                    id=row["id"],
                    document_id=row["document_id"],
                    slug=row["slug"],
                    heading=row["heading"],
                    content=row["content"],
                    token_count=row["token_count"],
                    embedding=np.frombuffer(row["embedding"], dtype="float32").tolist(),
                )
                for row in cursor.fetchall()
            ]

    def count_sections(self) -> int:
        with self._read_cursor() as cursor:
            cursor.execute("SELECT COUNT(*) FROM sections")
            return cursor.fetchone()[0]

    # Writes

    def _encode_embedding(self, embedding: list[float]) -> bytes:
        if len(embedding) != self.dimension:
            raise StoreError(
                f"Embedding has dimension {len(embedding)}, store expects {self.dimension}"
            )
        return sqlite3.Binary(np.asarray(embedding, dtype="float32").tobytes())

    def _insert_sections(self, cursor: sqlite3.Cursor, document_id: int, sections: Iterable[Section]) -> None:
        for section in sections:
            cursor.execute(
                """INSERT INTO sections
                (document_id, slug, heading, content, token_count, embedding)
                VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    document_id,
                    section.slug,
                    section.heading,
                    section.content,
                    section.token_count,
                    self._encode_embedding(section.embedding),
                ),
            )

    def insert_document(self, doc: Document, sections: list[Section]) -> int:
        """Insert a document and its sections atomically, returning the document ID."""
        with self._write_cursor() as cursor:
            cursor.execute(
                """INSERT INTO documents (path, checksum, meta, parent_path, version)
                VALUES (?, ?, ?, ?, ?)""",
                (
                    doc.path,
                    doc.checksum,
                    json.dumps(doc.meta) if doc.meta is not None else None,
                    doc.parent_path,
                    doc.version,
                ),
            )
            document_id: int = cursor.lastrowid  # type: ignore
            self._insert_sections(cursor, document_id, sections)
            return document_id

    def replace_document(self, doc: Document, sections: list[Section]) -> None:
        """Update a document row and regenerate all of its sections atomically."""
        with self._write_cursor() as cursor:
            cursor.execute(
                """UPDATE documents
                SET checksum = ?, meta = ?, parent_path = ?, version = ?,
                    updated_at = datetime('now'), last_refresh = datetime('now')
                WHERE path = ?""",
                (
                    doc.checksum,
                    json.dumps(doc.meta) if doc.meta is not None else None,
                    doc.parent_path,
                    doc.version,
                    doc.path,
                ),
            )
            if cursor.rowcount != 1:
                raise StoreError(f"Document not found: {doc.path}")
            cursor.execute("SELECT id FROM documents WHERE path = ?", (doc.path,))
            document_id = cursor.fetchone()["id"]
            cursor.execute("DELETE FROM sections WHERE document_id = ?", (document_id,))
            self._insert_sections(cursor, document_id, sections)

    def update_parent(self, path: str, parent_path: str | None, version: str) -> None:
        """Update only the parent reference and refresh bookkeeping."""
        with self._write_cursor() as cursor:
            cursor.execute(
                """UPDATE documents
                SET parent_path = ?, version = ?,
                    updated_at = datetime('now'), last_refresh = datetime('now')
                WHERE path = ?""",
                (parent_path, version, path),
            )
            if cursor.rowcount != 1:
                raise StoreError(f"Document not found: {path}")

    def touch_document(self, path: str, version: str) -> None:
        """Record that a pass saw the document unchanged."""
        with self._write_cursor() as cursor:
            cursor.execute(
                """UPDATE documents
                SET version = ?, last_refresh = datetime('now')
                WHERE path = ?""",
                (version, path),
            )
            if cursor.rowcount != 1:
                raise StoreError(f"Document not found: {path}")

    def delete_documents(self, paths: Iterable[str]) -> int:
        """Delete documents by path; their sections cascade. Returns the count."""
        deleted = 0
        with self._write_cursor() as cursor:
            for path in paths:
                cursor.execute("DELETE FROM documents WHERE path = ?", (path,))
                deleted += cursor.rowcount
        return deleted

    def null_dangling_parents(self) -> list[str]:
        """Clear parent references that point at no existing document.

        Returns the paths of the documents that were changed.
        """
        with self._write_cursor() as cursor:
            cursor.execute(
                """SELECT path FROM documents
                WHERE parent_path IS NOT NULL
                AND parent_path NOT IN (SELECT path FROM documents)
                ORDER BY path"""
            )
            paths = [row["path"] for row in cursor.fetchall()]
            if paths:
                cursor.execute(
                    """UPDATE documents SET parent_path = NULL, updated_at = datetime('now')
                    WHERE parent_path IS NOT NULL
                    AND parent_path NOT IN (SELECT path FROM documents)"""
                )
            return paths
