"""Embedding gateway: turns ordered section texts into vectors and token counts.

The reconciler only depends on the ``EmbeddingGateway`` protocol. The bundled
``HttpEmbeddingGateway`` talks to an OpenAI-compatible ``/embeddings`` endpoint.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from docsync.errors import GatewayError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass
class EmbeddingResult:
    """Vectors in input order, plus token usage."""

    vectors: list[list[float]]
    total_tokens: int
    token_counts: list[int] | None = None  # Per input, when the backend reports it


class EmbeddingGateway(Protocol):
    """Anything that can embed an ordered batch of texts."""

    def embed(self, texts: list[str]) -> EmbeddingResult:
        ...


def split_token_counts(total_tokens: int, texts: list[str]) -> list[int]:
    """
    Apportion a batch token total across its inputs by text length.

    The counts always sum to ``total_tokens``; rounding leftovers go to the
    last input.
    """
    if not texts:
        return []
    total_chars = sum(len(text) for text in texts)
    if total_chars == 0:
        counts = [total_tokens // len(texts)] * len(texts)
    else:
        counts = [total_tokens * len(text) // total_chars for text in texts]
    counts[-1] += total_tokens - sum(counts)
    return counts


class HttpEmbeddingGateway:
    """Client for an OpenAI-compatible embeddings API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        dimensions: int,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the gateway.

        Args:
            base_url: API root, e.g. https://api.openai.com/v1
            api_key: Bearer token
            model: Embedding model name
            dimensions: Expected vector dimension
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.dimensions = dimensions
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    def close(self) -> None:
        self._client.close()

    def embed(self, texts: list[str]) -> EmbeddingResult:
        """
        Embed ``texts`` in one request.

        Raises:
            GatewayError: On transport errors, non-2xx responses or a response
                that does not match the request.
        """
        if not texts:
            return EmbeddingResult(vectors=[], total_tokens=0, token_counts=[])

        payload = {"model": self.model, "input": texts, "dimensions": self.dimensions}
        try:
            response = self._client.post("/embeddings", json=payload)
        except httpx.TimeoutException as e:
            raise GatewayError(f"Embedding request timed out: {e}") from e
        except httpx.RequestError as e:
            raise GatewayError(f"Embedding request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise GatewayError(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
            items = sorted(body["data"], key=lambda item: item["index"])
            vectors = [[float(x) for x in item["embedding"]] for item in items]
            total_tokens = int((body.get("usage") or {}).get("total_tokens", 0))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise GatewayError(f"Malformed embedding response: {e}") from e

        if len(vectors) != len(texts):
            raise GatewayError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        for vector in vectors:
            if len(vector) != self.dimensions:
                raise GatewayError(
                    f"Expected {self.dimensions}-dimensional embeddings, got {len(vector)}"
                )

        logger.debug("Embedded %d texts (%d tokens)", len(texts), total_tokens)
        return EmbeddingResult(
            vectors=vectors,
            total_tokens=total_tokens,
            token_counts=split_token_counts(total_tokens, texts),
        )
