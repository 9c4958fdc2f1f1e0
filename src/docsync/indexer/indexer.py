"""Main indexer that coordinates syncing the docs tree to the store."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from fnmatch import fnmatch
from pathlib import Path

from docsync.errors import ParseError, SyncAborted
from docsync.gateway import EmbeddingGateway
from docsync.indexer.database import Database
from docsync.indexer.models import DiscoveredDocument, Document, Section
from docsync.indexer.parser import parse_document
from docsync.indexer.reconciler import (
    MODE_FULL,
    MODE_INCREMENTAL,
    DocumentError,
    Reconciler,
    SyncReport,
)
from docsync.indexer.sectionizer import split_sections
from docsync.indexer.walker import FileInfo, compute_hash, walk_docs_root

logger = logging.getLogger(__name__)

DOCUMENT_EXTENSIONS = (".md", ".mdx")
DEFAULT_IGNORE = ("404.mdx",)


def load_document(file_info: FileInfo) -> DiscoveredDocument:
    """
    Read, parse and sectionize one file.

    Raises:
        ParseError: If the file is not valid UTF-8 or its markup is malformed.
    """
    raw = file_info.path.read_bytes()
    try:
        content = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(f"Invalid UTF-8 encoding: {e}") from e

    parsed = parse_document(
        content,
        file_path=file_info.relative_path,
        mdx=file_info.relative_path.endswith(".mdx"),
    )
    return DiscoveredDocument(
        path=file_info.relative_path,
        checksum=compute_hash(raw),
        sections=split_sections(parsed.nodes),
        meta=parsed.meta,
        parent_path=file_info.parent_path,
    )


class Indexer:
    """
    Indexer that syncs a tree of markdown/MDX files with the store.

    The filesystem is always the source of truth. The store is a derived index
    that can be regenerated at any time with a full refresh.

    Thread Safety:
        Sync passes are protected by a lock so that a manual pass and a
        background pass never interleave. Read operations are safe to call
        from multiple threads as the Database uses thread-local connections.
    """

    def __init__(
        self,
        docs_root: Path,
        db: Database,
        gateway: EmbeddingGateway,
        ignore: tuple[str, ...] = DEFAULT_IGNORE,
        workers: int = 4,
    ):
        """
        Initialize the indexer.

        Args:
            docs_root: Root directory of the documents
            db: Store handle
            gateway: Embedding gateway handle
            ignore: fnmatch patterns of relative paths to skip
            workers: Threads used to parse documents
        """
        self.docs_root = docs_root
        self.db = db
        self.reconciler = Reconciler(db, gateway)
        self.ignore = ignore
        self.workers = max(1, workers)
        self._initialized = False
        self._write_lock = threading.Lock()

    def initialize(self) -> None:
        """Initialize the database schema."""
        self.db.initialize()
        self._initialized = True

    def close(self) -> None:
        """Close database connections."""
        self.db.close()

    def _ensure_initialized(self) -> None:
        """Ensure the database is initialized."""
        if not self._initialized:
            self.initialize()

    def _is_ignored(self, relative_path: str) -> bool:
        return any(fnmatch(relative_path, pattern) for pattern in self.ignore)

    def discover(self) -> tuple[list[DiscoveredDocument], list[DocumentError]]:
        """
        Walk, parse and sectionize every document under the docs root.

        Files are processed in parallel; results come back sorted by path.

        Returns:
            Tuple of (documents, parse failures).
        """
        files = [
            f
            for f in walk_docs_root(self.docs_root)
            if f.relative_path.endswith(DOCUMENT_EXTENSIONS) and not self._is_ignored(f.relative_path)
        ]
        logger.info("Walked %s: %d documents found", self.docs_root, len(files))

        documents: list[DiscoveredDocument] = []
        failures: list[DocumentError] = []
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = [(f, executor.submit(load_document, f)) for f in files]
            for file_info, future in futures:
                try:
                    documents.append(future.result())
                except (ParseError, OSError) as e:
                    error = e if isinstance(e, ParseError) else ParseError(str(e))
                    logger.error("Skipping %s: %s", file_info.relative_path, error)
                    failures.append(DocumentError(file_info.relative_path, error))

        documents.sort(key=lambda doc: doc.path)
        return documents, failures

    def sync(self, mode: str = MODE_INCREMENTAL) -> SyncReport:
        """
        Run one sync pass.

        Args:
            mode: "incremental" (checksum-guided) or "full" (delete and rebuild)

        Returns:
            SyncReport including parse failures.
        """
        self._ensure_initialized()
        with self._write_lock:
            documents, failures = self.discover()
            try:
                report = self.reconciler.run(
                    documents,
                    mode=mode,
                    seen_paths=[failure.path for failure in failures],
                )
            except SyncAborted as e:
                if e.report is not None:
                    e.report.errors[:0] = failures
                raise
            report.errors[:0] = failures
            return report

    def reindex(self) -> SyncReport:
        """Perform a full refresh of every document."""
        return self.sync(mode=MODE_FULL)

    # Query methods

    def list_documents(self) -> list[Document]:
        """List all stored documents."""
        self._ensure_initialized()
        return self.db.list_documents()

    def get_document(self, path: str) -> Document | None:
        """Get a document by path."""
        self._ensure_initialized()
        return self.db.get_document_by_path(path)

    def get_sections(self, document_id: int) -> list[Section]:
        """Get all sections for a document."""
        self._ensure_initialized()
        return self.db.get_sections(document_id)
