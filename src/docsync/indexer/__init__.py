"""
Indexer module for docsync.

This module discovers markdown/MDX documents, splits them into sections and
reconciles them against the SQLite store. The reconciler is the core component:
it decides, per document, whether to insert, update, re-parent or leave alone.
"""

from docsync.indexer.database import Database
from docsync.indexer.indexer import Indexer
from docsync.indexer.models import DiscoveredDocument, Document, ParsedSection, Section
from docsync.indexer.parser import parse_document
from docsync.indexer.reconciler import (
    MODE_FULL,
    MODE_INCREMENTAL,
    SYNC_MODES,
    Reconciler,
    SyncReport,
    classify,
)
from docsync.indexer.sectionizer import split_sections
from docsync.indexer.walker import FileInfo, compute_hash, walk_docs_root

__all__ = [
    "MODE_FULL",
    "MODE_INCREMENTAL",
    "SYNC_MODES",
    "Database",
    "DiscoveredDocument",
    "Document",
    "FileInfo",
    "Indexer",
    "ParsedSection",
    "Reconciler",
    "Section",
    "SyncReport",
    "classify",
    "compute_hash",
    "parse_document",
    "split_sections",
    "walk_docs_root",
]
