"""
docsync - keep an embedding index in step with a tree of markdown/MDX docs.

Documents are split into heading sections, fingerprinted by checksum and
reconciled against a SQLite store, so only new or changed documents are sent
to the embedding API.
"""

__version__ = "0.1.0"
