"""Generation backends.

A backend turns a GenerationRequest into either one complete result or a
sequence of text deltas. Two implementations:

- HttpGenerationBackend talks to the generation proxy over HTTP; streaming
  responses are SSE lines of the form
  data: {"text": "..."} ... data: {"done": true}, errors as data: {"error": "..."}.
- AnthropicGenerationBackend calls the model directly through the
  anthropic SDK. It serves text tools only.

Both raise the typed errors from genius_writer.core.errors. Cancellation
(asyncio.CancelledError) always propagates untouched.
"""

import json
from collections.abc import AsyncIterator
from typing import Any, Protocol

import anthropic
import httpx
from anthropic import AsyncAnthropic

from genius_writer.core.config import Settings
from genius_writer.core.errors import (
    AuthenticationError,
    BackendError,
    NetworkError,
    QuotaExceededError,
    RateLimitedError,
    WriterError,
)
from genius_writer.core.logging import get_logger
from genius_writer.core.prompts import get_prompt_config
from genius_writer.core.schemas_generation import GeneratedContent, GenerationRequest
from genius_writer.core.tools import OutputKind, get_tool

logger = get_logger(__name__)

SSE_DATA_PREFIX = "data:"


class GenerationBackend(Protocol):
    """What the controller needs from a backend."""

    async def complete(self, request: GenerationRequest) -> GeneratedContent: ...

    def stream(self, request: GenerationRequest) -> AsyncIterator[str]: ...


def error_from_response(status_code: int, body: Any) -> WriterError:
    """
    Map a non-2xx response to a typed error.

    The body only ever goes into the technical message.
    """
    detail = body.get("detail", body) if isinstance(body, dict) else body
    info = detail if isinstance(detail, dict) else {}
    text = info.get("message") or info.get("error") or detail

    message = f"Backend returned {status_code}: {text}"
    if status_code in (401, 403):
        return AuthenticationError(message, status_code=status_code)
    if status_code == 429:
        if info.get("error") == "rate_limited":
            return RateLimitedError(message, status_code=status_code)
        return QuotaExceededError(
            message,
            status_code=status_code,
            limit=info.get("limit"),
            current=info.get("currentUsage"),
            plan=info.get("plan"),
        )
    return BackendError(message, status_code=status_code)


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:500]


def parse_sse_line(line: str) -> dict[str, Any] | None:
    """Decode one SSE line; returns None for blank lines, comments and non-data fields."""
    line = line.strip()
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    raw = line[len(SSE_DATA_PREFIX):].strip()
    if not raw:
        return None
    try:
        event = json.loads(raw)
    except json.JSONDecodeError as e:
        raise BackendError(f"Malformed stream event: {raw[:200]}") from e
    if not isinstance(event, dict):
        raise BackendError(f"Unexpected stream event: {raw[:200]}")
    return event


def _stream_error(event: dict[str, Any]) -> WriterError:
    message = f"Stream error: {event.get('message') or event['error']}"
    if event["error"] == "quota":
        return QuotaExceededError(message)
    if event["error"] == "auth":
        return AuthenticationError(message)
    return BackendError(message)


class HttpGenerationBackend:
    """Client of the generation proxy API."""

    def __init__(
        self,
        api_url: str,
        api_token: str = "",
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._headers = {"Content-Type": "application/json"}
        if api_token:
            self._headers["Authorization"] = f"Bearer {api_token}"

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpGenerationBackend":
        return cls(
            api_url=settings.GENERATION_API_URL,
            api_token=settings.GENERATION_API_TOKEN,
            timeout=settings.GENERATION_TIMEOUT_SECONDS,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport, headers=self._headers
        )

    async def complete(self, request: GenerationRequest) -> GeneratedContent:
        """
        Issue an atomic generation.

        Raises:
            NetworkError: Transport-level failure
            AuthenticationError / QuotaExceededError / BackendError: Non-2xx response
            BackendError: Malformed payload
        """
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.api_url}/ai/generate", json=request.model_dump(mode="json")
                )
        except httpx.TransportError as e:
            raise NetworkError(f"Generation request failed: {e}") from e

        if response.status_code >= 400:
            raise error_from_response(response.status_code, _decode_body(response))

        try:
            return GeneratedContent.model_validate(response.json())
        except ValueError as e:
            raise BackendError(f"Malformed generation payload: {e}") from e

    async def stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        """
        Issue a streamed generation and yield text deltas.

        The stream must end with a done event; a connection that closes
        before it is reported as a NetworkError.
        """
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", f"{self.api_url}/ai/stream", json=request.model_dump(mode="json")
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        raise error_from_response(response.status_code, _decode_body(response))

                    async for line in response.aiter_lines():
                        event = parse_sse_line(line)
                        if event is None:
                            continue
                        if "error" in event:
                            raise _stream_error(event)
                        if event.get("done"):
                            return
                        text = event.get("text")
                        if text:
                            yield text
        except httpx.TransportError as e:
            raise NetworkError(f"Generation stream failed: {e}") from e

        raise NetworkError("Generation stream ended before completion")


def _translate_anthropic_error(e: anthropic.APIError) -> WriterError:
    if isinstance(e, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return AuthenticationError(f"Anthropic rejected credentials: {e}", status_code=e.status_code)
    if isinstance(e, anthropic.RateLimitError):
        return QuotaExceededError(f"Anthropic rate limit: {e}", status_code=429)
    if isinstance(e, anthropic.APIConnectionError):
        return NetworkError(f"Anthropic connection failed: {e}")
    if isinstance(e, anthropic.APIStatusError):
        return BackendError(f"Anthropic error: {e}", status_code=e.status_code)
    return BackendError(f"Anthropic error: {e}")


class AnthropicGenerationBackend:
    """Direct model access through the anthropic SDK (text tools only)."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-haiku-20241022",
        max_tokens: int = 4096,
        client: AsyncAnthropic | None = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.client = client or AsyncAnthropic(api_key=api_key)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnthropicGenerationBackend":
        return cls(
            api_key=settings.ANTHROPIC_API_KEY,
            model=settings.GENERATION_MODEL,
            max_tokens=settings.GENERATION_MAX_TOKENS,
        )

    def _message_args(self, request: GenerationRequest) -> dict[str, Any]:
        if get_tool(request.tool_id).output != OutputKind.TEXT:
            raise BackendError(f"{request.tool_id.value} is not supported by the direct model backend")
        config = get_prompt_config(request.tool_id, request.inputs, request.voice_hint, request.stage)
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": config.system_instruction,
            "messages": [{"role": "user", "content": config.prompt}],
        }

    async def complete(self, request: GenerationRequest) -> GeneratedContent:
        args = self._message_args(request)
        try:
            message = await self.client.messages.create(**args)
        except anthropic.APIError as e:
            raise _translate_anthropic_error(e) from e

        text = "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )
        logger.debug(
            f"Generated {len(text)} chars for {request.tool_id.value}",
            extra={"tool_id": request.tool_id.value},
        )
        return GeneratedContent(text=text)

    async def stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        args = self._message_args(request)
        try:
            async with self.client.messages.stream(**args) as stream:
                async for event in stream:
                    if getattr(event, "type", None) == "content_block_delta":
                        text = getattr(event.delta, "text", None)
                        if text:
                            yield text
        except anthropic.APIError as e:
            raise _translate_anthropic_error(e) from e
