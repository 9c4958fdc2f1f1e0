"""Shared fixtures for docsync tests."""

import os

import pytest

from docsync.errors import GatewayError
from docsync.gateway import EmbeddingResult
from docsync.indexer import Database

DIMENSION = 3


class FakeGateway:
    """Deterministic in-memory embedding gateway.

    The first vector component is the input length, so tests can tell which
    text produced which vector. Texts containing a string from ``fail_on``
    make the whole call fail.
    """

    def __init__(self, dimension: int = DIMENSION, report_counts: bool = True):
        self.dimension = dimension
        self.report_counts = report_counts
        self.calls: list[list[str]] = []
        self.fail_on: set[str] = set()

    def embed(self, texts: list[str]) -> EmbeddingResult:
        self.calls.append(list(texts))
        if any(marker in text for text in texts for marker in self.fail_on):
            raise GatewayError("embedding backend unavailable")
        vectors = [[float(len(text))] + [0.5] * (self.dimension - 1) for text in texts]
        counts = [len(text.split()) for text in texts]
        return EmbeddingResult(
            vectors=vectors,
            total_tokens=sum(counts),
            token_counts=counts if self.report_counts else None,
        )

    def close(self) -> None:
        pass


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep DOCSYNC_* settings from the outer environment out of tests."""
    for name in list(os.environ):
        if name.startswith("DOCSYNC_"):
            monkeypatch.delenv(name)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def db(tmp_path):
    """Initialized store in a temporary directory."""
    database = Database(tmp_path / "store.db", dimension=DIMENSION)
    database.initialize()
    yield database
    database.close()
