"""Shared dependencies for the v1 API."""

from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from genius_writer.core.config import get_settings
from genius_writer.core.errors import InputValidationError, QuotaExceededError, WriterError
from genius_writer.core.logging import get_logger
from genius_writer.core.rate_limiter import RateLimiter, build_rate_limiter
from genius_writer.services.generation_backend import AnthropicGenerationBackend, GenerationBackend
from genius_writer.services.usage_ledger import UsageLedger

logger = get_logger(__name__)

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)

ANONYMOUS_CALLER = "anonymous"


def require_caller(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    """
    Identify the caller.

    When GENERATION_API_TOKEN is set, requests must present it as a bearer
    token; otherwise every caller is anonymous.
    """
    expected = get_settings().GENERATION_API_TOKEN
    if not expected:
        return ANONYMOUS_CALLER
    if credentials is None or credentials.credentials != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthorized", "message": "Invalid or missing API token"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


@lru_cache(maxsize=1)
def get_generation_backend() -> GenerationBackend:
    settings = get_settings()
    if not settings.ANTHROPIC_API_KEY:
        raise HTTPException(
            status_code=500,
            detail="Anthropic API key not configured. Please set ANTHROPIC_API_KEY in environment.",
        )
    return AnthropicGenerationBackend.from_settings(settings)


@lru_cache(maxsize=1)
def get_usage_ledger() -> UsageLedger:
    return UsageLedger(default_plan=get_settings().DEFAULT_PLAN)


@lru_cache(maxsize=1)
def get_server_rate_limiter() -> RateLimiter:
    return build_rate_limiter()


def http_error(exc: WriterError) -> HTTPException:
    """Translate a typed error into the API's error body."""
    if isinstance(exc, InputValidationError):
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
        body = {"error": exc.kind.value, "message": str(exc), "fields": exc.fields}
    elif isinstance(exc, QuotaExceededError):
        status_code = status.HTTP_429_TOO_MANY_REQUESTS
        body = {
            "error": exc.kind.value,
            "message": exc.user_message,
            "limit": exc.limit,
            "currentUsage": exc.current,
            "plan": exc.plan,
        }
    else:
        # Upstream model failures, including a rejected server-side key
        status_code = status.HTTP_502_BAD_GATEWAY
        body = {"error": exc.kind.value, "message": exc.user_message}
    return HTTPException(status_code=status_code, detail=body)
