"""Schemas for generation requests, results and per-tool request state."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from genius_writer.core.tools import OutputKind, ToolType


class GenerationStage(str, Enum):
    """Which prompt a request runs: the tool's own, or a step of the outline flow."""
    DIRECT = "direct"
    OUTLINE = "outline"
    FROM_OUTLINE = "from_outline"


class GenerationRequest(BaseModel):
    """Body of POST /ai/generate and /ai/stream."""
    tool_id: ToolType
    inputs: dict[str, Any] = Field(default_factory=dict)
    voice_hint: Optional[str] = None
    stage: GenerationStage = GenerationStage.DIRECT


class GeneratedContent(BaseModel):
    """Result of an atomic generation: exactly one of text, image or audio."""
    text: Optional[str] = None
    image: Optional[str] = None  # data URI
    audio: Optional[str] = None  # base64 PCM/WAV

    @model_validator(mode="after")
    def exactly_one(self) -> "GeneratedContent":
        present = [v for v in (self.text, self.image, self.audio) if v is not None]
        if len(present) != 1:
            raise ValueError("Generated content must carry exactly one of text, image or audio")
        return self

    @property
    def kind(self) -> OutputKind:
        if self.image is not None:
            return OutputKind.IMAGE
        if self.audio is not None:
            return OutputKind.AUDIO
        return OutputKind.TEXT

    @property
    def value(self) -> str:
        return self.text if self.text is not None else self.image or self.audio or ""


class RequestState(str, Enum):
    """Per-tool request state."""
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"


class Outcome(str, Enum):
    """How the last request for a tool ended."""
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"
