"""Configuration module for docsync.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from docsync.indexer.reconciler import MODE_INCREMENTAL, SYNC_MODES

DEFAULT_EMBEDDING_URL = "https://api.openai.com/v1"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_EMBEDDING_DIMENSIONS = 1536


def _int_from_env(name: str, default: str, minimum: int) -> int:
    value = os.getenv(name, default)
    try:
        number = int(value)
        if number < minimum:
            raise ValueError(f"must be >= {minimum}, got {number}")
    except ValueError as e:
        raise ValueError(f"Invalid {name} value '{value}': {e}") from e
    return number


@dataclass
class Config:
    """Application configuration."""

    docs_root: Path
    db_path: Path
    mode: str
    ignore: tuple[str, ...]
    workers: int
    sync_interval: int
    embedding_url: str
    embedding_api_key: str | None
    embedding_model: str
    embedding_dimensions: int
    embedding_timeout: float

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        docs_root = Path(os.getenv("DOCSYNC_ROOT", "docs")).expanduser()

        default_db = str(docs_root / ".docsync" / "index.db")
        db_path = Path(os.getenv("DOCSYNC_DB", default_db)).expanduser()

        mode = os.getenv("DOCSYNC_MODE", MODE_INCREMENTAL).strip().lower()
        if mode not in SYNC_MODES:
            raise ValueError(f"Invalid DOCSYNC_MODE value '{mode}': expected one of {SYNC_MODES}")

        ignore = tuple(
            pattern.strip()
            for pattern in os.getenv("DOCSYNC_IGNORE", "404.mdx").split(",")
            if pattern.strip()
        )

        timeout_str = os.getenv("DOCSYNC_EMBEDDING_TIMEOUT", "30")
        try:
            embedding_timeout = float(timeout_str)
            if embedding_timeout <= 0:
                raise ValueError(f"Timeout must be positive, got {embedding_timeout}")
        except ValueError as e:
            raise ValueError(f"Invalid DOCSYNC_EMBEDDING_TIMEOUT value '{timeout_str}': {e}") from e

        return cls(
            docs_root=docs_root,
            db_path=db_path,
            mode=mode,
            ignore=ignore,
            workers=_int_from_env("DOCSYNC_WORKERS", "4", minimum=1),
            sync_interval=_int_from_env("DOCSYNC_SYNC_INTERVAL", "0", minimum=0),
            embedding_url=os.getenv("DOCSYNC_EMBEDDING_URL", DEFAULT_EMBEDDING_URL),
            embedding_api_key=os.getenv("DOCSYNC_EMBEDDING_API_KEY") or None,
            embedding_model=os.getenv("DOCSYNC_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
            embedding_dimensions=_int_from_env(
                "DOCSYNC_EMBEDDING_DIMENSIONS", str(DEFAULT_EMBEDDING_DIMENSIONS), minimum=1
            ),
            embedding_timeout=embedding_timeout,
        )
