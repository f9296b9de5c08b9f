"""Generation API endpoints (reference backend)."""

import json
from typing import AsyncGenerator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from genius_writer.api.deps import (
    get_generation_backend,
    get_server_rate_limiter,
    get_usage_ledger,
    http_error,
    require_caller,
)
from genius_writer.core.blog_outline import stage_payload
from genius_writer.core.errors import WriterError
from genius_writer.core.logging import get_logger
from genius_writer.core.rate_limiter import RateLimiter
from genius_writer.core.schemas_generation import GenerationRequest
from genius_writer.services.generation_backend import GenerationBackend
from genius_writer.services.usage_ledger import UsageLedger

logger = get_logger(__name__)

router = APIRouter()


def _sse_event(data: dict) -> str:
    """Format a dict as an SSE data line."""
    return f"data: {json.dumps(data)}\n\n"


def _admit(
    body: GenerationRequest,
    caller: str,
    ledger: UsageLedger,
    rate_limiter: RateLimiter,
) -> GenerationRequest:
    """Rate-limit, quota-check and validate; raises HTTPException on refusal."""
    rate_limiter.check_limit(f"generate:{caller}")
    try:
        ledger.check_generation(caller)
        payload = stage_payload(body.tool_id, body.inputs, body.stage)
    except WriterError as e:
        raise http_error(e) from e
    return body.model_copy(update={"inputs": payload})


@router.post("/generate")
async def generate(
    body: GenerationRequest,
    caller: str = Depends(require_caller),
    backend: GenerationBackend = Depends(get_generation_backend),
    ledger: UsageLedger = Depends(get_usage_ledger),
    rate_limiter: RateLimiter = Depends(get_server_rate_limiter),
) -> dict:
    """
    Atomic generation.

    Returns:
        {"text": ...}, {"image": data-uri} or {"audio": base64}
    """
    request = _admit(body, caller, ledger, rate_limiter)
    try:
        result = await backend.complete(request)
    except WriterError as e:
        logger.error(f"Generation failed for {request.tool_id.value}: {e}")
        raise http_error(e) from e

    ledger.record_generation(caller)
    return result.model_dump(exclude_none=True)


@router.post("/stream")
async def stream(
    body: GenerationRequest,
    caller: str = Depends(require_caller),
    backend: GenerationBackend = Depends(get_generation_backend),
    ledger: UsageLedger = Depends(get_usage_ledger),
    rate_limiter: RateLimiter = Depends(get_server_rate_limiter),
) -> StreamingResponse:
    """
    Streamed generation as Server-Sent Events.

    Yields data: {"text": delta} events followed by data: {"done": true};
    a failure mid-stream ends with data: {"error": kind, "message": ...}.
    """
    request = _admit(body, caller, ledger, rate_limiter)

    async def events() -> AsyncGenerator[str, None]:
        try:
            async for delta in backend.stream(request):
                yield _sse_event({"text": delta})
            ledger.record_generation(caller)
            yield _sse_event({"done": True})
        except WriterError as e:
            logger.error(f"Stream failed for {request.tool_id.value}: {e}")
            yield _sse_event({"error": e.kind.value, "message": e.user_message})
        except Exception as e:
            logger.error(f"Error in generation stream: {e}", exc_info=True)
            yield _sse_event({"error": "backend", "message": WriterError.user_message})

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
