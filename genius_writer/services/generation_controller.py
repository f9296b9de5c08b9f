"""Generation request controller.

Mediates every call to the generation backend with single-flight semantics
per tool: each tool owns a RequestSlot, and starting a request replaces
(and cancels) whatever the slot held. Results of a request that is no
longer the slot's current one are never delivered; they surface as
GenerationCancelled instead.

State per tool: idle -> requesting -> (streaming ->) idle, with the last
outcome recorded as success, error or cancelled.
"""

import asyncio
import itertools
import logging
from typing import Any

from genius_writer.core.blog_outline import BlogOutline, parse_outline, stage_payload
from genius_writer.core.content_sanitizer import strip_code_fences
from genius_writer.core.errors import BackendError, GenerationCancelled, WriterError
from genius_writer.core.logging import get_logger, log_with_context
from genius_writer.core.rate_limiter import RateLimiter
from genius_writer.core.schemas_generation import (
    GeneratedContent,
    GenerationRequest,
    GenerationStage,
    Outcome,
    RequestState,
)
from genius_writer.core.schemas_usage import GateAction
from genius_writer.core.tools import OutputKind, ToolType, get_tool
from genius_writer.services.generation_backend import GenerationBackend
from genius_writer.services.usage_gate import UsageGate

logger = get_logger(__name__)

RATE_LIMIT_KEY = "generation"

# Stream queue message kinds
_CHUNK = "chunk"
_DONE = "done"
_ERROR = "error"
_CANCELLED = "cancelled"


class RequestHandle:
    """Identity and cancellation handle of one issued request."""

    def __init__(self, tool_id: ToolType, request_id: int):
        self.tool_id = tool_id
        self.request_id = request_id
        self.state = RequestState.REQUESTING
        self.cancelled = False
        self._task: asyncio.Future | None = None
        self._queue: asyncio.Queue | None = None

    def attach(self, task: asyncio.Future, queue: asyncio.Queue | None = None) -> None:
        self._task = task
        self._queue = queue

    def cancel(self) -> None:
        """Abort the request. Idempotent."""
        if self.cancelled:
            return
        self.cancelled = True
        self.state = RequestState.IDLE
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._queue is not None:
            self._queue.put_nowait((_CANCELLED, None))

    def __repr__(self) -> str:
        return f"RequestHandle({self.tool_id.value}#{self.request_id}, {self.state.value})"


class RequestSlot:
    """The single active request of one tool. Mutated only by replace() and cancel()."""

    def __init__(self, tool_id: ToolType):
        self.tool_id = tool_id
        self._current: RequestHandle | None = None
        self._ids = itertools.count(1)

    @property
    def current(self) -> RequestHandle | None:
        return self._current

    @property
    def state(self) -> RequestState:
        return self._current.state if self._current is not None else RequestState.IDLE

    def is_current(self, handle: RequestHandle) -> bool:
        return self._current is handle and not handle.cancelled

    def replace(self) -> RequestHandle:
        """Cancel the active request, if any, and install a new one."""
        self.cancel()
        self._current = RequestHandle(self.tool_id, next(self._ids))
        return self._current

    def cancel(self) -> bool:
        """Cancel the active request; returns False when there was nothing to cancel."""
        handle, self._current = self._current, None
        if handle is None or handle.cancelled or handle.state == RequestState.IDLE:
            return False
        handle.cancel()
        return True


class GenerationStream:
    """
    Async iterator over the cumulative, fence-stripped content of one request.

    The backend is pumped by a background task into a queue so that
    cancellation can interrupt a consumer waiting for the next chunk.
    Closing the stream (aclose() or leaving `async with`) cancels the request.
    """

    def __init__(
        self,
        controller: "GenerationController",
        slot: RequestSlot,
        handle: RequestHandle,
        request: GenerationRequest,
    ):
        self._controller = controller
        self._slot = slot
        self._handle = handle
        self._request = request
        self._queue: asyncio.Queue = asyncio.Queue()
        self._finished = False
        self.content = ""
        handle.attach(asyncio.ensure_future(self._pump()), self._queue)

    @property
    def handle(self) -> RequestHandle:
        return self._handle

    async def _pump(self) -> None:
        raw = ""
        try:
            async for delta in self._controller.backend.stream(self._request):
                raw += delta
                self._handle.state = RequestState.STREAMING
                self._queue.put_nowait((_CHUNK, strip_code_fences(raw)))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Delivered to the consumer, which raises it
            self._queue.put_nowait((_ERROR, e))
            return
        self._queue.put_nowait((_DONE, None))

    def __aiter__(self) -> "GenerationStream":
        return self

    async def __anext__(self) -> str:
        if self._finished:
            raise StopAsyncIteration

        try:
            kind, value = await self._queue.get()
        except asyncio.CancelledError:
            # The consumer itself was cancelled
            self._close()
            self._finish(Outcome.CANCELLED)
            raise

        if kind == _CANCELLED or self._handle.cancelled:
            self._finish(Outcome.CANCELLED)
            raise GenerationCancelled()

        if kind == _CHUNK:
            self.content = value
            return value

        if kind == _DONE:
            self._finish(Outcome.SUCCESS)
            self._controller._record_usage(self._request.tool_id, self.content)
            raise StopAsyncIteration

        self._finish(Outcome.ERROR)
        raise self._controller._typed(self._request.tool_id, value)

    def _finish(self, outcome: Outcome) -> None:
        if self._finished:
            return
        self._finished = True
        self._controller._settle(self._slot, self._handle, outcome)

    def _close(self) -> None:
        if self._slot.current is self._handle:
            self._slot.cancel()
        else:
            self._handle.cancel()

    async def aclose(self) -> None:
        """Stop consuming; an unfinished request is cancelled."""
        if not self._finished:
            self._close()
            self._finish(Outcome.CANCELLED)

    async def __aenter__(self) -> "GenerationStream":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


class GenerationController:
    """Issues generation requests with per-tool single-flight."""

    def __init__(
        self,
        backend: GenerationBackend,
        gate: UsageGate | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.backend = backend
        self.gate = gate
        self.rate_limiter = rate_limiter
        self._slots: dict[ToolType, RequestSlot] = {}
        self._outcomes: dict[ToolType, Outcome] = {}

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def _slot(self, tool_id: ToolType) -> RequestSlot:
        if tool_id not in self._slots:
            self._slots[tool_id] = RequestSlot(tool_id)
        return self._slots[tool_id]

    def state(self, tool_id: ToolType | str) -> RequestState:
        return self._slot(ToolType(tool_id)).state

    def last_outcome(self, tool_id: ToolType | str) -> Outcome | None:
        return self._outcomes.get(ToolType(tool_id))

    # ------------------------------------------------------------------
    # Request lifecycle
    # ------------------------------------------------------------------

    def _prepare(
        self,
        tool_id: ToolType | str,
        inputs: dict[str, Any],
        voice_hint: str | None,
        style: dict[str, Any] | None,
        stage: GenerationStage = GenerationStage.DIRECT,
    ) -> GenerationRequest:
        """Validate, gate and rate-limit. Nothing is sent if any of these fail."""
        tool = get_tool(tool_id)
        payload = stage_payload(tool.id, inputs, stage, style)

        if self.gate is not None:
            action = GateAction.GENERATE_IMAGE if tool.output == OutputKind.IMAGE else GateAction.GENERATE_TEXT
            self.gate.check(action)
        if self.rate_limiter is not None:
            self.rate_limiter.acquire(RATE_LIMIT_KEY)

        return GenerationRequest(
            tool_id=tool.id, inputs=payload, voice_hint=voice_hint or None, stage=stage
        )

    def _settle(self, slot: RequestSlot, handle: RequestHandle, outcome: Outcome) -> None:
        handle.state = RequestState.IDLE
        # A superseded request must not overwrite the outcome of its successor
        if slot.current in (handle, None):
            self._outcomes[slot.tool_id] = outcome
        log_with_context(
            logger,
            logging.DEBUG,
            f"Request finished: {outcome.value}",
            tool_id=slot.tool_id.value,
            request_id=handle.request_id,
        )

    def _typed(self, tool_id: ToolType, exc: BaseException) -> WriterError:
        if isinstance(exc, WriterError):
            error = exc
        else:
            error = BackendError(f"Unexpected generation failure: {exc}")
            error.__cause__ = exc
        log_with_context(
            logger,
            logging.ERROR,
            f"Generation failed: {error}",
            tool_id=tool_id.value,
            kind=error.kind.value,
        )
        return error

    def _record_usage(self, tool_id: ToolType, value: str) -> None:
        if self.gate is not None:
            self.gate.record_usage(value, is_image=get_tool(tool_id).output == OutputKind.IMAGE)

    async def generate(
        self,
        tool_id: ToolType | str,
        inputs: dict[str, Any],
        voice_hint: str | None = None,
        style: dict[str, Any] | None = None,
    ) -> GeneratedContent:
        """
        Atomic generation.

        Args:
            tool_id: Tool identifier
            inputs: Form values; style keys may be included or passed via `style`
            voice_hint: Optional brand voice / persona
            style: Optional template / accent color selection

        Returns:
            GeneratedContent with fence-stripped text, or an image/audio payload

        Raises:
            InputValidationError, QuotaExceededError: Before anything is sent
            GenerationCancelled: The request was superseded or cancelled
            NetworkError / BackendError / AuthenticationError / QuotaExceededError
        """
        return await self._complete(self._prepare(tool_id, inputs, voice_hint, style))

    async def generate_outline(
        self,
        tool_id: ToolType | str,
        inputs: dict[str, Any],
        voice_hint: str | None = None,
    ) -> BlogOutline:
        """
        First step of an outline-first tool: an editable outline of the post.

        Runs through the tool's slot like any atomic request.

        Raises:
            InputValidationError: The tool has no outline step, or the form is invalid
            BackendError: The model's answer is not a readable outline
        """
        request = self._prepare(tool_id, inputs, voice_hint, None, stage=GenerationStage.OUTLINE)
        result = await self._complete(request)
        return parse_outline(result.value)

    def generate_from_outline(
        self,
        tool_id: ToolType | str,
        outline: BlogOutline,
        voice_hint: str | None = None,
    ) -> GenerationStream:
        """
        Second step of an outline-first tool: stream the post for an edited outline.

        Raises:
            InputValidationError: The outline has review errors
        """
        request = self._prepare(
            tool_id, {"outline": outline}, voice_hint, None, stage=GenerationStage.FROM_OUTLINE
        )
        return self._open_stream(request)

    async def _complete(self, request: GenerationRequest) -> GeneratedContent:
        slot = self._slot(request.tool_id)
        handle = slot.replace()
        task = asyncio.ensure_future(self.backend.complete(request))
        handle.attach(task)
        log_with_context(
            logger,
            logging.INFO,
            "Request issued",
            tool_id=request.tool_id.value,
            request_id=handle.request_id,
        )

        try:
            result = await task
        except asyncio.CancelledError:
            if handle.cancelled:
                self._settle(slot, handle, Outcome.CANCELLED)
                raise GenerationCancelled() from None
            # The caller was cancelled; take the request down with it
            slot.cancel()
            self._settle(slot, handle, Outcome.CANCELLED)
            raise
        except Exception as e:
            if not slot.is_current(handle):
                self._settle(slot, handle, Outcome.CANCELLED)
                raise GenerationCancelled() from e
            self._settle(slot, handle, Outcome.ERROR)
            raise self._typed(request.tool_id, e)

        if not slot.is_current(handle):
            self._settle(slot, handle, Outcome.CANCELLED)
            raise GenerationCancelled()

        if result.text is not None:
            result = GeneratedContent(text=strip_code_fences(result.text))
        self._settle(slot, handle, Outcome.SUCCESS)
        self._record_usage(request.tool_id, result.value)
        return result

    def generate_streaming(
        self,
        tool_id: ToolType | str,
        inputs: dict[str, Any],
        voice_hint: str | None = None,
        style: dict[str, Any] | None = None,
    ) -> GenerationStream:
        """
        Streamed generation.

        The request is issued immediately (cancelling any previous one for
        the tool); the returned stream yields the cumulative cleaned content.
        Must be called from a running event loop.

        Raises:
            InputValidationError, QuotaExceededError: Before anything is sent
        """
        return self._open_stream(self._prepare(tool_id, inputs, voice_hint, style))

    def _open_stream(self, request: GenerationRequest) -> GenerationStream:
        slot = self._slot(request.tool_id)
        handle = slot.replace()
        log_with_context(
            logger,
            logging.INFO,
            "Stream issued",
            tool_id=request.tool_id.value,
            request_id=handle.request_id,
        )
        return GenerationStream(self, slot, handle, request)

    def cancel(self, tool_id: ToolType | str) -> None:
        """Cancel the in-flight request for a tool; a no-op when idle."""
        slot = self._slot(ToolType(tool_id))
        if slot.cancel():
            self._outcomes[slot.tool_id] = Outcome.CANCELLED
            log_with_context(logger, logging.INFO, "Request cancelled", tool_id=slot.tool_id.value)

    def cancel_all(self) -> None:
        for tool_id in list(self._slots):
            self.cancel(tool_id)
