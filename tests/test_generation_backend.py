"""Tests for the HTTP and direct-model generation backends."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from genius_writer.core.errors import (
    AuthenticationError,
    BackendError,
    NetworkError,
    QuotaExceededError,
)
from genius_writer.core.schemas_generation import GenerationRequest
from genius_writer.core.tools import ToolType
from genius_writer.services.generation_backend import (
    AnthropicGenerationBackend,
    HttpGenerationBackend,
    parse_sse_line,
)

API_URL = "http://writer.test/v1"


def tweet_request(**kwargs) -> GenerationRequest:
    return GenerationRequest(tool_id=ToolType.SOCIAL_TWITTER, inputs={"topic": "AI"}, **kwargs)


def http_backend(handler, token: str = "") -> HttpGenerationBackend:
    return HttpGenerationBackend(API_URL, api_token=token, transport=httpx.MockTransport(handler))


def sse(*events: dict) -> bytes:
    return "".join(f"data: {json.dumps(e)}\n\n" for e in events).encode()


async def collect(backend, request) -> list[str]:
    return [delta async for delta in backend.stream(request)]


class TestParseSseLine:
    def test_data_line(self):
        assert parse_sse_line('data: {"text": "hi"}') == {"text": "hi"}

    def test_ignored_lines(self):
        assert parse_sse_line("") is None
        assert parse_sse_line(": keep-alive") is None
        assert parse_sse_line("event: message") is None
        assert parse_sse_line("data:") is None

    def test_malformed_event(self):
        with pytest.raises(BackendError):
            parse_sse_line("data: {not json")


class TestHttpComplete:
    @pytest.mark.asyncio
    async def test_success(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/ai/generate"
            assert request.headers["Authorization"] == "Bearer secret"
            body = json.loads(request.content)
            assert body["tool_id"] == "SOCIAL_TWITTER"
            assert body["inputs"] == {"topic": "AI"}
            return httpx.Response(200, json={"text": "<p>tweet</p>"})

        result = await http_backend(handler, token="secret").complete(tweet_request())
        assert result.text == "<p>tweet</p>"

    @pytest.mark.asyncio
    async def test_image_payload(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"image": "data:image/png;base64,AAA"})

        request = GenerationRequest(tool_id=ToolType.IMAGE_GEN, inputs={"prompt": "cat"})
        result = await http_backend(handler).complete(request)
        assert result.image == "data:image/png;base64,AAA"

    @pytest.mark.asyncio
    async def test_quota_response(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                429,
                json={"detail": {"error": "quota", "limit": 10, "currentUsage": 10, "plan": "free"}},
            )

        with pytest.raises(QuotaExceededError) as exc_info:
            await http_backend(handler).complete(tweet_request())
        assert exc_info.value.plan == "free"

    @pytest.mark.asyncio
    async def test_unauthorized(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"detail": "Invalid token"})

        with pytest.raises(AuthenticationError):
            await http_backend(handler).complete(tweet_request())

    @pytest.mark.asyncio
    async def test_server_error_with_text_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="Internal Server Error")

        with pytest.raises(BackendError) as exc_info:
            await http_backend(handler).complete(tweet_request())
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_malformed_payload(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        with pytest.raises(BackendError):
            await http_backend(handler).complete(tweet_request())

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError):
            await http_backend(handler).complete(tweet_request())


class TestHttpStream:
    @pytest.mark.asyncio
    async def test_yields_deltas_until_done(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/ai/stream"
            return httpx.Response(
                200,
                content=sse({"text": "<p>Hel"}, {"text": "lo</p>"}, {"done": True}, {"text": "ignored"}),
                headers={"Content-Type": "text/event-stream"},
            )

        assert await collect(http_backend(handler), tweet_request()) == ["<p>Hel", "lo</p>"]

    @pytest.mark.asyncio
    async def test_error_event(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, content=sse({"text": "<p>"}, {"error": "quota", "message": "limit reached"})
            )

        with pytest.raises(QuotaExceededError):
            await collect(http_backend(handler), tweet_request())

    @pytest.mark.asyncio
    async def test_stream_without_done_is_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=sse({"text": "<p>partial"}))

        with pytest.raises(NetworkError):
            await collect(http_backend(handler), tweet_request())

    @pytest.mark.asyncio
    async def test_error_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"detail": "Forbidden"})

        with pytest.raises(AuthenticationError):
            await collect(http_backend(handler), tweet_request())


class FakeMessageStream:
    """Stands in for the SDK's streaming context manager."""

    def __init__(self, events):
        self.events = events

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def __aiter__(self):
        for event in self.events:
            yield event


def text_delta(text: str) -> SimpleNamespace:
    return SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="text_delta", text=text))


class TestAnthropicBackend:
    @pytest.mark.asyncio
    async def test_complete(self):
        client = MagicMock()
        client.messages.create = AsyncMock(
            return_value=SimpleNamespace(content=[SimpleNamespace(type="text", text="<p>tweet</p>")])
        )
        backend = AnthropicGenerationBackend(api_key="test", model="test-model", client=client)

        result = await backend.complete(tweet_request(voice_hint="Pirate: says arr"))

        assert result.text == "<p>tweet</p>"
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert "BRAND VOICE: Pirate: says arr" in kwargs["system"]
        assert kwargs["messages"] == [{"role": "user", "content": "Topic: AI"}]

    @pytest.mark.asyncio
    async def test_stream(self):
        client = MagicMock()
        client.messages.stream = MagicMock(
            return_value=FakeMessageStream(
                [
                    SimpleNamespace(type="message_start"),
                    text_delta("<p>Hel"),
                    text_delta("lo</p>"),
                    SimpleNamespace(type="message_stop"),
                ]
            )
        )
        backend = AnthropicGenerationBackend(api_key="test", client=client)

        assert await collect(backend, tweet_request()) == ["<p>Hel", "lo</p>"]

    @pytest.mark.asyncio
    async def test_non_text_tools_rejected(self):
        client = MagicMock()
        backend = AnthropicGenerationBackend(api_key="test", client=client)

        with pytest.raises(BackendError):
            await backend.complete(GenerationRequest(tool_id=ToolType.IMAGE_GEN, inputs={"prompt": "cat"}))
        client.messages.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_sdk_errors_are_translated(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client = MagicMock()
        backend = AnthropicGenerationBackend(api_key="test", client=client)

        client.messages.create = AsyncMock(side_effect=anthropic.APIConnectionError(request=request))
        with pytest.raises(NetworkError):
            await backend.complete(tweet_request())

        client.messages.create = AsyncMock(
            side_effect=anthropic.AuthenticationError(
                "invalid x-api-key", response=httpx.Response(401, request=request), body=None
            )
        )
        with pytest.raises(AuthenticationError):
            await backend.complete(tweet_request())

        client.messages.create = AsyncMock(
            side_effect=anthropic.RateLimitError(
                "rate limited", response=httpx.Response(429, request=request), body=None
            )
        )
        with pytest.raises(QuotaExceededError):
            await backend.complete(tweet_request())
