"""Reconciliation of discovered documents against the store.

Each discovered document is classified against the persisted row with the
same path, and one dispatcher applies the classification. Both sync modes go
through that dispatcher; full refresh just empties the store first so every
document classifies as an insert.
"""

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from docsync.errors import (
    GatewayError,
    InvariantViolation,
    StoreError,
    SyncAborted,
)
from docsync.gateway import EmbeddingGateway, split_token_counts
from docsync.indexer.database import Database
from docsync.indexer.models import DiscoveredDocument, Document, ParsedSection, Section

logger = logging.getLogger(__name__)

MODE_INCREMENTAL = "incremental"
MODE_FULL = "full"
SYNC_MODES = (MODE_INCREMENTAL, MODE_FULL)


# Classification variants


@dataclass(frozen=True)
class Insert:
    """No persisted document has this path."""

    discovered: DiscoveredDocument


@dataclass(frozen=True)
class Unchanged:
    """Same checksum and same parent: bookkeeping only."""

    discovered: DiscoveredDocument
    persisted: Document


@dataclass(frozen=True)
class ParentOnly:
    """Same checksum, different parent: update the parent reference only."""

    discovered: DiscoveredDocument
    persisted: Document


@dataclass(frozen=True)
class Changed:
    """Different checksum: update the row and regenerate every section."""

    discovered: DiscoveredDocument
    persisted: Document


Classification = Insert | Unchanged | ParentOnly | Changed


def classify(discovered: DiscoveredDocument, persisted: Document | None) -> Classification:
    """Classify a discovered document against its persisted counterpart."""
    if persisted is None:
        return Insert(discovered)
    if persisted.path != discovered.path:
        raise InvariantViolation(
            f"Classified {discovered.path} against persisted {persisted.path}"
        )
    if persisted.checksum != discovered.checksum:
        return Changed(discovered, persisted)
    if persisted.parent_path != discovered.parent_path:
        return ParentOnly(discovered, persisted)
    return Unchanged(discovered, persisted)


@dataclass
class DocumentError:
    """A per-document failure recorded during a pass."""

    path: str
    error: Exception

    def __str__(self) -> str:
        return f"{self.path}: {type(self.error).__name__}: {self.error}"


@dataclass
class SyncReport:
    """Outcome of one sync pass."""

    version: str
    mode: str
    inserted: int = 0
    changed: int = 0
    parent_only: int = 0
    unchanged: int = 0
    deleted: int = 0
    nulled_parents: list[str] = field(default_factory=list)
    errors: list[DocumentError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def record(self, classification: Classification) -> None:
        if isinstance(classification, Insert):
            self.inserted += 1
        elif isinstance(classification, Changed):
            self.changed += 1
        elif isinstance(classification, ParentOnly):
            self.parent_only += 1
        else:
            self.unchanged += 1

    def summary(self) -> str:
        return (
            f"{self.inserted} inserted, {self.changed} changed, "
            f"{self.parent_only} re-parented, {self.unchanged} unchanged, "
            f"{self.deleted} deleted, {len(self.errors)} failed"
        )


def resolve_parent(doc: DiscoveredDocument, known_paths: set[str]) -> DiscoveredDocument:
    """Drop a parent reference that points outside ``known_paths``."""
    if doc.parent_path is None or doc.parent_path in known_paths:
        return doc
    logger.debug("Parent %s of %s was not discovered, treating as root", doc.parent_path, doc.path)
    return replace(doc, parent_path=None)


def embedding_order(sections: list[ParsedSection]) -> list[int]:
    """Indices of ``sections`` sorted by slug; the preamble sorts first, ties keep document order."""
    return sorted(range(len(sections)), key=lambda i: (sections[i].slug is not None, sections[i].slug or ""))


def embedding_input(section: ParsedSection) -> str:
    """Text sent to the gateway for a section."""
    return section.content.replace("\n", " ")


class Reconciler:
    """
    Applies discovered documents to the store.

    The store and gateway handles are passed in; the reconciler owns no global
    state and is the only component that writes documents and sections.
    """

    def __init__(self, db: Database, gateway: EmbeddingGateway):
        self.db = db
        self.gateway = gateway

    def run(
        self,
        discovered: list[DiscoveredDocument],
        mode: str = MODE_INCREMENTAL,
        seen_paths: Iterable[str] = (),
        version: str | None = None,
    ) -> SyncReport:
        """
        Reconcile the store with ``discovered``.

        Args:
            discovered: Fully-formed documents from this pass, in path order
            mode: "incremental" or "full"
            seen_paths: Extra paths present on disk that could not be parsed;
                they are protected from the deletion sweep
            version: Refresh version for this pass (generated if omitted)

        Returns:
            SyncReport for the pass.

        Raises:
            InvariantViolation: On duplicate paths or an impossible state.
            StoreError: If the destructive phase of a full refresh fails.
            SyncAborted: If a full refresh fails after its destructive phase.
        """
        if mode not in SYNC_MODES:
            raise ValueError(f"Unknown sync mode '{mode}', expected one of {SYNC_MODES}")

        paths = [doc.path for doc in discovered]
        if len(set(paths)) != len(paths):
            duplicates = sorted({path for path in paths if paths.count(path) > 1})
            raise InvariantViolation(f"Duplicate discovered paths: {duplicates}")

        seen_paths = set(seen_paths)
        report = SyncReport(version=version or uuid.uuid4().hex, mode=mode)
        logger.info("Starting %s sync of %d documents (version %s)", mode, len(discovered), report.version)

        if mode == MODE_FULL:
            logger.info("Full refresh: deleting existing documents and sections")
            self.db.clear()
            persisted: dict[str, Document] = {}
        else:
            persisted = self.db.get_documents_by_path()

        # A path that failed to parse only backs a parent reference while its
        # previous version is still stored
        known_paths = set(paths) | (seen_paths & persisted.keys())
        discovered = [resolve_parent(doc, known_paths) for doc in discovered]

        for doc in discovered:
            classification = classify(doc, persisted.get(doc.path))
            try:
                self._apply(classification, report.version)
            except (StoreError, GatewayError) as e:
                if mode == MODE_FULL:
                    report.errors.append(DocumentError(doc.path, e))
                    raise SyncAborted(
                        f"Full refresh aborted at {doc.path}: {e}. The store is incomplete.",
                        report,
                    ) from e
                logger.error("Error processing %s: %s", doc.path, e)
                report.errors.append(DocumentError(doc.path, e))
                continue
            report.record(classification)

        if mode == MODE_INCREMENTAL:
            stale = [path for path in persisted if path not in known_paths]
            if stale:
                report.deleted = self._sweep(stale, report)

        try:
            report.nulled_parents = self.db.null_dangling_parents()
        except StoreError as e:
            if mode == MODE_FULL:
                raise SyncAborted(f"Full refresh aborted resolving parents: {e}", report) from e
            logger.error("Error resolving parent references: %s", e)
            report.errors.append(DocumentError("<parents>", e))
        for path in report.nulled_parents:
            logger.warning("Parent of %s does not exist, reference cleared", path)

        logger.info("Sync complete: %s", report.summary())
        return report

    def _sweep(self, stale: list[str], report: SyncReport) -> int:
        try:
            deleted = self.db.delete_documents(stale)
        except StoreError as e:
            logger.error("Error deleting stale documents: %s", e)
            report.errors.append(DocumentError("<sweep>", e))
            return 0
        for path in stale:
            logger.info("Deleted %s", path)
        return deleted

    def _apply(self, classification: Classification, version: str) -> None:
        """Apply one classification to the store."""
        doc = classification.discovered
        if isinstance(classification, Insert):
            sections = self._embed_sections(doc)
            self.db.insert_document(self._to_row(doc, version), sections)
            logger.info("Inserted %s (%d sections)", doc.path, len(sections))
        elif isinstance(classification, Changed):
            sections = self._embed_sections(doc)
            self.db.replace_document(self._to_row(doc, version), sections)
            logger.info("Updated %s (%d sections)", doc.path, len(sections))
        elif isinstance(classification, ParentOnly):
            self.db.update_parent(doc.path, doc.parent_path, version)
            logger.info(
                "Parent of %s changed: %s -> %s",
                doc.path,
                classification.persisted.parent_path,
                doc.parent_path,
            )
        elif isinstance(classification, Unchanged):
            self.db.touch_document(doc.path, version)
            logger.debug("No changes detected for %s", doc.path)
        else:
            raise InvariantViolation(f"Unknown classification {classification!r}")

    @staticmethod
    def _to_row(doc: DiscoveredDocument, version: str) -> Document:
        return Document(
            path=doc.path,
            checksum=doc.checksum,
            meta=doc.meta,
            parent_path=doc.parent_path,
            version=version,
        )

    def _embed_sections(self, doc: DiscoveredDocument) -> list[Section]:
        """
        Embed every section of ``doc`` in one gateway call.

        Sections are sent sorted by slug so identical content always produces
        the same request; the returned sections keep document order.
        """
        if not doc.sections:
            return []

        order = embedding_order(doc.sections)
        texts = [embedding_input(doc.sections[i]) for i in order]
        result = self.gateway.embed(texts)

        if len(result.vectors) != len(texts):
            raise GatewayError(
                f"Gateway returned {len(result.vectors)} embeddings for {len(texts)} sections"
            )
        token_counts = result.token_counts
        if token_counts is None or len(token_counts) != len(texts):
            token_counts = split_token_counts(result.total_tokens, texts)

        embedded: dict[int, Section] = {}
        for position, index in enumerate(order):
            parsed = doc.sections[index]
            embedded[index] = Section(
                slug=parsed.slug,
                heading=parsed.heading,
                content=parsed.content,
                token_count=token_counts[position],
                embedding=list(result.vectors[position]),
            )
        return [embedded[i] for i in range(len(doc.sections))]

