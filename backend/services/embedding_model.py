"""Text embedding integration with the Mistral embeddings API."""
import time
import logging
from typing import List, Optional, Sequence

import httpx
import numpy as np

from config import (
    MISTRAL_API_KEY,
    MISTRAL_API_URL,
    MISTRAL_EMBED_MODEL,
    EMBEDDING_DIMENSION,
    HTTP_TIMEOUT,
)
from models.chunk import DocumentChunk
from services.backoff import BackoffPolicy
from services.errors import ConfigurationError, EmbeddingDimensionError, UpstreamError

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Similarity for stored documents is computed by the database; this is kept
    for local ranking and tests.

    Raises:
        ValueError: If the vectors differ in length
    """
    if len(a) != len(b):
        raise ValueError("Vectors must have the same length")

    left = np.asarray(a, dtype=float)
    right = np.asarray(b, dtype=float)
    magnitude = float(np.linalg.norm(left) * np.linalg.norm(right))
    if magnitude == 0:
        return 0.0
    return float(np.dot(left, right) / magnitude)


def format_embedding_for_pgvector(embedding: Sequence[float]) -> str:
    """Render a vector as the textual array literal pgvector accepts."""
    return "[" + ",".join(str(value) for value in embedding) + "]"


def check_dimension(embeddings: List[List[float]], expected: int) -> List[List[float]]:
    """Ensure every vector matches the width the similarity RPC expects."""
    for embedding in embeddings:
        if len(embedding) != expected:
            raise EmbeddingDimensionError(expected, len(embedding))
    return embeddings


class EmbeddingModel:
    """Wrapper for the Mistral embeddings endpoint used for documents and chat queries."""

    def __init__(
        self,
        api_key: Optional[str] = MISTRAL_API_KEY,
        model_name: str = MISTRAL_EMBED_MODEL,
        dimension: int = EMBEDDING_DIMENSION,
        api_url: str = MISTRAL_API_URL,
        backoff: Optional[BackoffPolicy] = None,
        timeout: float = HTTP_TIMEOUT
    ):
        """
        Initialize the embedding model client.

        The API key is checked when a request is made, so a missing key
        surfaces as a ConfigurationError from the calling operation.

        Args:
            api_key: Mistral API key
            model_name: Embedding model identifier
            dimension: Expected vector width
            api_url: Embeddings endpoint
            backoff: Retry policy for rate-limited calls
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.model_name = model_name
        self.dimension = dimension
        self.api_url = api_url
        self.backoff = backoff or BackoffPolicy()
        self.timeout = timeout

        logger.info(f"Initialized EmbeddingModel with model: {model_name}")

    def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for a single text string (e.g. a chat question).

        Raises:
            ValueError: If text is empty
            ConfigurationError: If no API key is configured
            UpstreamError: If the API answers with a non-2xx status
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        return self._embed_with_retry([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts in a single API call.

        Returns:
            Embedding vectors in the same order as ``texts``

        Raises:
            ValueError: If the list is empty or contains empty strings
        """
        if not texts:
            raise ValueError("Texts list cannot be empty")

        if any(not t or not t.strip() for t in texts):
            raise ValueError("Texts in a batch cannot be empty")

        return self._embed_with_retry(texts)

    def embed_chunks(self, chunks: List[DocumentChunk]) -> List[List[float]]:
        """Embed chunk contents, preserving chunk order."""
        return self.embed_batch([chunk.content for chunk in chunks])

    def _embed_with_retry(self, texts: List[str]) -> List[List[float]]:
        if not self.api_key:
            raise ConfigurationError("MISTRAL_API_KEY is not configured for embeddings")

        return self.backoff.run(lambda: self._request(texts), description="Mistral embeddings")

    def _request(self, texts: List[str]) -> List[List[float]]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        payload = {
            "model": self.model_name,
            "input": texts,
            "output_dimension": self.dimension,
        }

        start_time = time.time()

        with httpx.Client(timeout=self.timeout) as client:
            response = client.post(self.api_url, headers=headers, json=payload)

        elapsed = time.time() - start_time

        if response.status_code == 401:
            logger.error("Authentication failed for Mistral API")
            raise UpstreamError("Invalid API key", status_code=401)

        if response.status_code < 200 or response.status_code >= 300:
            error_msg = f"Embedding error: {response.status_code} - {response.text}"
            logger.error(error_msg)
            raise UpstreamError(error_msg, status_code=response.status_code)

        data = response.json()["data"]
        embeddings = [item["embedding"] for item in sorted(data, key=lambda item: item.get("index", 0))]

        logger.debug(f"Generated embeddings for {len(texts)} texts in {elapsed:.2f}s")
        return check_dimension(embeddings, self.dimension)
