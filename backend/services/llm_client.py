"""Context assembly and answer synthesis with the Groq API."""
import time
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence

import tiktoken
from groq import Groq
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError

from config import (
    GROQ_API_KEY,
    CHAT_MODEL,
    CHAT_MAX_TOKENS,
    CHAT_TEMPERATURE,
    CONTEXT_SEPARATOR,
    MAX_CONTEXT_CHARS,
)
from models.chunk import SearchResult
from models.conversation import ChatMessage
from services.errors import ConfigurationError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful tutor and coach. Answer concisely and in a structured way, "
    "using only the provided context. If the context does not contain the answer, "
    "say so honestly."
)

NO_CONTEXT_PLACEHOLDER = "No specific context available."

# o200k_base approximates the Llama 3 tokenizer closely enough for accounting
_encoder = None
_encoder_unavailable = False


def get_encoder():
    """Load the tokenizer once; None if it cannot be loaded (e.g. no cached encoding offline)."""
    global _encoder, _encoder_unavailable
    if _encoder is None and not _encoder_unavailable:
        try:
            _encoder = tiktoken.get_encoding("o200k_base")
        except Exception as e:
            logger.warning(f"Tokenizer unavailable, prompt tokens will be reported as 0: {e}")
            _encoder_unavailable = True
    return _encoder


def count_tokens(text: str) -> int:
    encoder = get_encoder()
    if encoder is None:
        return 0
    return len(encoder.encode(text))


def count_prompt_tokens(
    question: str,
    context: str,
    history: Optional[Sequence[ChatMessage]] = None
) -> int:
    """Token count of the full prompt as it will be sent."""
    messages = build_messages(question, context, history)
    return count_tokens("\n".join(message["content"] for message in messages))


def build_context(
    matches: Sequence[SearchResult],
    separator: str = CONTEXT_SEPARATOR,
    max_chars: int = MAX_CONTEXT_CHARS
) -> str:
    """Join passage contents in match order and cut the result at max_chars."""
    return separator.join(match.content for match in matches)[:max_chars]


def build_messages(
    question: str,
    context: str,
    history: Optional[Sequence[ChatMessage]] = None
) -> List[Dict[str, str]]:
    """Build the chat messages; an empty context becomes NO_CONTEXT_PLACEHOLDER."""
    context = context or NO_CONTEXT_PLACEHOLDER
    messages = [{"role": "system", "content": SYSTEM_PROMPT}]
    for message in history or []:
        messages.append({"role": message.role, "content": message.content})
    messages.append(
        {"role": "user", "content": f"Context:\n{context}\n\n---\n\nQuestion:\n{question}"}
    )
    return messages


@dataclass
class LLMResponse:
    """Response from LLM generation."""
    text: str
    tokens_input: int
    tokens_output: int
    latency_ms: int
    model_used: str


@dataclass
class LLMError:
    """Structured error response from LLM operations."""
    code: str
    message: str
    details: Dict[str, Any]


class LLMClientError(Exception):
    """Custom exception for LLM client errors with structured error information."""

    def __init__(self, error: LLMError):
        self.error = error
        super().__init__(error.message)


def _classify_error(e: Exception, model: str, latency_ms: int) -> LLMError:
    details = {"model": model, "latency_ms": latency_ms, "original_error": str(e)}

    if isinstance(e, RateLimitError):
        details["retry_after"] = 60
        return LLMError("RATE_LIMIT_ERROR", "Rate limit exceeded. Please try again in a few moments.", details)
    if isinstance(e, AuthenticationError):
        return LLMError("AUTHENTICATION_ERROR", "Authentication failed. Please check your API key.", details)
    if isinstance(e, APITimeoutError):
        return LLMError("TIMEOUT_ERROR", "Request timed out. Please try again.", details)
    if isinstance(e, APIError):
        return LLMError("API_ERROR", f"Groq API error: {str(e)}", details)

    details["error_type"] = type(e).__name__
    return LLMError("UNKNOWN_ERROR", f"Unexpected error during generation: {str(e)}", details)


class LLMClient:
    """Client for interfacing with Groq API for grounded answers."""

    def __init__(
        self,
        api_key: Optional[str] = GROQ_API_KEY,
        model: str = CHAT_MODEL,
        max_tokens: int = CHAT_MAX_TOKENS,
        temperature: float = CHAT_TEMPERATURE
    ):
        """
        Initialize LLM client.

        The Groq client is created on first use, so a missing key surfaces as
        a ConfigurationError from the request that needs it.

        Args:
            api_key: Groq API key
            model: Chat model identifier
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
        """
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client: Optional[Groq] = None

    @property
    def client(self) -> Groq:
        if not self.api_key:
            raise ConfigurationError("GROQ_API_KEY is not configured")
        if self._client is None:
            self._client = Groq(api_key=self.api_key)
            logger.info("Groq client initialized")
        return self._client

    def answer(
        self,
        question: str,
        context: str,
        history: Optional[Sequence[ChatMessage]] = None
    ) -> LLMResponse:
        """
        Answer a question from the supplied context.

        Args:
            question: User question
            context: Assembled passages (may be empty)
            history: Earlier turns of the session, oldest first

        Returns:
            LLMResponse with text, token counts, and latency

        Raises:
            ConfigurationError: If no API key is configured
            LLMClientError: Structured error with code, message, and details
        """
        client = self.client
        messages = build_messages(question, context, history)
        start_time = time.time()

        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
        except Exception as e:
            raise self._failure(e, start_time)

        latency_ms = int((time.time() - start_time) * 1000)
        tokens_input = response.usage.prompt_tokens
        tokens_output = response.usage.completion_tokens

        logger.info(
            f"Generated answer: model={self.model}, "
            f"input_tokens={tokens_input}, output_tokens={tokens_output}, "
            f"latency={latency_ms}ms"
        )

        return LLMResponse(
            text=response.choices[0].message.content or "",
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            latency_ms=latency_ms,
            model_used=self.model
        )

    def answer_stream(
        self,
        question: str,
        context: str,
        history: Optional[Sequence[ChatMessage]] = None
    ) -> Iterator[str]:
        """
        Stream answer tokens as they are generated.

        Raises:
            ConfigurationError: If no API key is configured
            LLMClientError: If the stream cannot be opened or breaks off
        """
        client = self.client
        messages = build_messages(question, context, history)
        start_time = time.time()

        try:
            stream = client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                stream=True
            )
            for chunk in stream:
                if not chunk.choices:
                    continue
                token = chunk.choices[0].delta.content
                if token:
                    yield token
        except Exception as e:
            raise self._failure(e, start_time)

        logger.info(f"Streamed answer: model={self.model}, latency={int((time.time() - start_time) * 1000)}ms")

    def _failure(self, e: Exception, start_time: float) -> LLMClientError:
        latency_ms = int((time.time() - start_time) * 1000)
        error = _classify_error(e, self.model, latency_ms)
        logger.error(
            f"{error.code}: model={self.model}, latency={latency_ms}ms, error={e}",
            exc_info=True,
            extra={"error_code": error.code, "error_details": error.details}
        )
        return LLMClientError(error)
