"""Data models for the indexer."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class Document:
    """Represents a document row in the store."""

    id: int | None = None
    path: str = ""  # Relative from the docs root, POSIX separators
    checksum: str = ""
    meta: dict[str, Any] | None = None
    parent_path: str | None = None
    version: str | None = None  # Refresh version of the last pass that touched it
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_refresh: datetime | None = None


@dataclass
class Section:
    """Represents a stored section of a document."""

    id: int | None = None
    document_id: int = 0
    slug: str | None = None
    heading: str | None = None
    content: str = ""
    token_count: int = 0
    embedding: list[float] = field(default_factory=list)


@dataclass
class ParsedSection:
    """A section produced by the sectionizer, before embedding."""

    content: str
    heading: str | None = None
    slug: str | None = None


@dataclass
class DiscoveredDocument:
    """A fully-formed document found on disk, ready for reconciliation."""

    path: str
    checksum: str
    sections: list[ParsedSection] = field(default_factory=list)
    meta: dict[str, Any] | None = None
    parent_path: str | None = None
