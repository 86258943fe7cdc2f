# Copyright (c) Syntropy Systems
"""Generation clients and the error taxonomy for backend calls."""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, ClassVar, Protocol, cast

import httpx
from typing_extensions import Self

from coursebench.models.bench import ErrorKind, Generation, TokenUsage

if TYPE_CHECKING:
    from types import TracebackType

    from coursebench.config import ProviderSettings, RunSettings
    from coursebench.models.bench import ModelDescriptor

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """Error from a generation backend, classified by kind."""

    kind: ClassVar[ErrorKind] = "provider_error"


class NetworkError(GenerationError):
    """The backend could not be reached."""

    kind: ClassVar[ErrorKind] = "network"


class GenerationTimeoutError(GenerationError):
    """The backend did not answer within the per-call timeout."""

    kind: ClassVar[ErrorKind] = "timeout"


class RateLimitedError(GenerationError):
    """The backend rejected the call because of rate limiting."""

    kind: ClassVar[ErrorKind] = "rate_limited"

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ProviderError(GenerationError):
    """The backend answered with an error or an unusable payload."""

    kind: ClassVar[ErrorKind] = "provider_error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GenerationClient(Protocol):
    """Anything that turns a prompt into text for a given model."""

    async def generate(
        self, model: ModelDescriptor, prompt: str
    ) -> Generation | str:
        ...


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception raised during a backend call to an error kind."""
    if isinstance(exc, GenerationError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return "timeout"
    if isinstance(exc, (httpx.TransportError, OSError)):
        return "network"
    return "provider_error"


def parse_retry_after_seconds(retry_after_header: str | None) -> float | None:
    """Parse a Retry-After header given as delta-seconds or an HTTP date."""
    if not retry_after_header:
        return None
    cleaned = retry_after_header.strip()
    if not cleaned:
        return None
    try:
        seconds = float(cleaned)
        if seconds >= 0:
            return seconds
    except ValueError:
        pass

    try:
        retry_after_time = parsedate_to_datetime(cleaned)
    except (TypeError, ValueError):
        return None
    if retry_after_time.tzinfo is None:
        retry_after_time = retry_after_time.replace(tzinfo=timezone.utc)
    delay_seconds = (retry_after_time - datetime.now(timezone.utc)).total_seconds()
    return max(0.0, delay_seconds)


def normalize_message_content(content: object) -> str:
    """Flatten chat message content, which may be a list of parts."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in cast("list[object]", content):
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict):
                text = cast("dict[str, object]", part).get("text")
                if isinstance(text, str):
                    parts.append(text)
        return "".join(parts)
    if content is None:
        return ""
    return str(content)


def extract_model_text(payload: dict[str, object]) -> str:
    """Pull the first choice's message text out of a chat completion."""
    error = payload.get("error")
    if error:
        detail = json.dumps(error, ensure_ascii=False)
        msg = f"API returned error payload: {detail}"
        raise ProviderError(msg)

    choices = payload.get("choices")
    if not choices or not isinstance(choices, list):
        msg = "API response missing choices array"
        raise ProviderError(msg)
    first_choice = cast("list[object]", choices)[0]
    if not isinstance(first_choice, dict):
        msg = "API response first choice is not an object"
        raise ProviderError(msg)
    message = cast("dict[str, object]", first_choice).get("message")
    if not isinstance(message, dict):
        msg = "API response choice.message is not an object"
        raise ProviderError(msg)
    return normalize_message_content(cast("dict[str, object]", message).get("content"))


def extract_usage(payload: dict[str, object]) -> TokenUsage | None:
    """Read token usage from a chat completion, if reported."""
    usage = payload.get("usage")
    if not isinstance(usage, dict):
        return None
    usage_dict = cast("dict[str, object]", usage)

    def _count(name: str) -> int:
        value = usage_dict.get(name)
        return int(value) if isinstance(value, (int, float)) else 0

    return TokenUsage(
        prompt_tokens=_count("prompt_tokens"),
        completion_tokens=_count("completion_tokens"),
        total_tokens=_count("total_tokens"),
    )


class OpenRouterClient:
    """Async client for OpenAI-compatible chat completion endpoints."""

    base_url: str
    temperature: float
    max_tokens: int
    _client: httpx.AsyncClient

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://openrouter.ai/api/v1",
        app_title: str = "coursebench",
        temperature: float = 0.7,
        max_tokens: int = 8000,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Bearer token for the backend
            base_url: API root, e.g. "https://openrouter.ai/api/v1"
            app_title: Sent as X-Title for attribution on OpenRouter
            temperature: Default sampling temperature
            max_tokens: Default completion token limit
            timeout: Transport-level timeout in seconds
            transport: Optional httpx transport, used by tests

        """
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "X-Title": app_title,
            },
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        provider: ProviderSettings,
        run: RunSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> Self:
        """Build a client from configuration, reading the API key from env."""
        return cls(
            provider.get_api_key(),
            base_url=provider.base_url,
            app_title=provider.app_title,
            temperature=run.temperature,
            max_tokens=run.max_tokens,
            timeout=run.timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> Self:
        """Enter the client context and return self."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the client context and close the HTTP client."""
        await self.aclose()

    def build_payload(self, model: ModelDescriptor, prompt: str) -> dict[str, object]:
        temperature = model.temperature if model.temperature is not None else self.temperature
        return {
            "model": model.backend_id,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": model.max_tokens or self.max_tokens,
        }

    async def generate(self, model: ModelDescriptor, prompt: str) -> Generation:
        """Send one prompt and return the completion text.

        Raises:
            NetworkError: If the backend cannot be reached.
            GenerationTimeoutError: If the transport times out.
            RateLimitedError: On HTTP 429.
            ProviderError: On any other non-2xx status or an unusable body.

        """
        try:
            response = await self._client.post(
                "/chat/completions", json=self.build_payload(model, prompt)
            )
        except httpx.TimeoutException as e:
            msg = f"Request to {model.backend_id} timed out"
            raise GenerationTimeoutError(msg) from e
        except httpx.RequestError as e:
            msg = f"Failed to connect to {self.base_url}: {e}"
            raise NetworkError(msg) from e

        if response.status_code == 429:
            retry_after = parse_retry_after_seconds(response.headers.get("Retry-After"))
            msg = f"Rate limited by provider for {model.backend_id}"
            raise RateLimitedError(msg, retry_after=retry_after)

        if response.is_error:
            detail = response.text[:500]
            msg = f"HTTP {response.status_code}: {detail}"
            raise ProviderError(msg, status_code=response.status_code)

        try:
            payload = cast("object", response.json())
        except ValueError as e:
            msg = f"Invalid JSON response from provider: {e}"
            raise ProviderError(msg, status_code=response.status_code) from e
        if not isinstance(payload, dict):
            msg = "Provider response is not a JSON object"
            raise ProviderError(msg, status_code=response.status_code)

        payload_dict = cast("dict[str, object]", payload)
        text = extract_model_text(payload_dict)
        usage = extract_usage(payload_dict)
        logger.debug(
            "Received %d chars from %s", len(text), model.backend_id
        )
        return Generation(text=text, usage=usage)
