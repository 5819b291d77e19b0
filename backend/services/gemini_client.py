"""Google Gemini integration: text embeddings, tags and summaries."""
import base64
import logging
from typing import Any, Dict, List, Optional

import httpx

from config import (
    GEMINI_API_KEY,
    GEMINI_API_BASE,
    GEMINI_MODEL,
    GEMINI_EMBED_MODEL,
    EMBEDDING_DIMENSION,
    HTTP_TIMEOUT,
)
from services.backoff import BackoffPolicy
from services.embedding_model import check_dimension
from services.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

TAG_PROMPT = (
    "You are a tagging assistant. Generate 3-8 relevant, specific tags for the given "
    "content. Output only lowercase tags separated by commas, nothing else."
)

SUMMARY_PROMPT = (
    "You are a summarization assistant. Create a concise 1-2 sentence summary of the "
    "content. Focus on the key points and main topic. Output only the summary."
)

MAX_TAG_LENGTH = 50


def inline_image_part(image_bytes: bytes, mime_type: str) -> Dict[str, Any]:
    """Build a generateContent part carrying base64 image data."""
    return {
        "inline_data": {
            "mime_type": mime_type or "image/jpeg",
            "data": base64.b64encode(image_bytes).decode("ascii"),
        }
    }


def parse_tags(raw: str) -> List[str]:
    """Split a comma-separated model answer into clean lowercase tags."""
    tags = []
    for tag in raw.split(","):
        tag = tag.strip().lower()
        if tag and len(tag) < MAX_TAG_LENGTH and tag not in tags:
            tags.append(tag)
    return tags


class GeminiClient:
    """Client for the Gemini generateContent and embedContent REST endpoints."""

    def __init__(
        self,
        api_key: Optional[str] = GEMINI_API_KEY,
        model: str = GEMINI_MODEL,
        embed_model: str = GEMINI_EMBED_MODEL,
        dimension: int = EMBEDDING_DIMENSION,
        api_base: str = GEMINI_API_BASE,
        backoff: Optional[BackoffPolicy] = None,
        timeout: float = HTTP_TIMEOUT
    ):
        self.api_key = api_key
        self.model = model
        self.embed_model = embed_model
        self.dimension = dimension
        self.api_base = api_base.rstrip("/")
        self.backoff = backoff or BackoffPolicy()
        self.timeout = timeout
        logger.info(f"Initialized GeminiClient with model: {model}, embeddings: {embed_model}")

    def _post(self, model: str, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ConfigurationError("GEMINI_API_KEY is not configured")

        url = f"{self.api_base}/{model}:{method}"
        with httpx.Client(timeout=self.timeout) as client:
            response = client.post(url, params={"key": self.api_key}, json=payload)

        if response.status_code < 200 or response.status_code >= 300:
            error_msg = f"Gemini {method} error: {response.status_code} - {response.text}"
            logger.error(error_msg)
            raise UpstreamError(error_msg, status_code=response.status_code)

        return response.json()

    def generate(
        self,
        parts: List[Dict[str, Any]],
        max_output_tokens: int = 2000,
        model: Optional[str] = None
    ) -> str:
        """
        Run generateContent and return the first candidate's text ("" if absent).

        Args:
            parts: Content parts (text and/or inline image data)
            max_output_tokens: Generation limit
            model: Override the default generation model

        Raises:
            ConfigurationError: If no API key is configured
            UpstreamError: On non-2xx responses after rate-limit retries
        """
        payload = {
            "contents": [{"parts": parts}],
            "generationConfig": {"maxOutputTokens": max_output_tokens},
        }

        def call() -> str:
            data = self._post(model or self.model, "generateContent", payload)
            candidates = data.get("candidates") or [{}]
            content_parts = (candidates[0].get("content") or {}).get("parts") or [{}]
            return content_parts[0].get("text", "")

        return self.backoff.run(call, description="Gemini generateContent")

    def embed_text(self, text: str) -> List[float]:
        """
        Embed text with the Gemini embedding model.

        Raises:
            ValueError: If text is empty
            EmbeddingDimensionError: If the returned width is unexpected
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        payload = {
            "model": f"models/{self.embed_model}",
            "content": {"parts": [{"text": text}]},
            "outputDimensionality": self.dimension,
        }

        def call() -> List[float]:
            data = self._post(self.embed_model, "embedContent", payload)
            values = (data.get("embedding") or {}).get("values") or []
            return check_dimension([values], self.dimension)[0]

        return self.backoff.run(call, description="Gemini embedContent")

    def generate_tags(self, content: str, mime_type: Optional[str] = None) -> List[str]:
        """Generate 3-8 lowercase tags; returns [] when generation fails."""
        prompt = (
            f"{TAG_PROMPT}\n\nContent type: {mime_type or 'unknown'}\n\n"
            f"Content:\n{content[:2000]}"
        )
        try:
            return parse_tags(self.generate([{"text": prompt}], max_output_tokens=100))
        except Exception as e:
            logger.error(f"Tag generation failed after retries: {e}")
            return []

    def generate_summary(self, content: str, title: Optional[str] = None) -> str:
        """Generate a 1-2 sentence summary; returns "" when generation fails."""
        title_section = f"Title: {title}\n\n" if title else ""
        prompt = f"{SUMMARY_PROMPT}\n\n{title_section}Content:\n{content[:4000]}"
        try:
            return self.generate([{"text": prompt}], max_output_tokens=150).strip()
        except Exception as e:
            logger.error(f"Summary generation failed after retries: {e}")
            return ""
