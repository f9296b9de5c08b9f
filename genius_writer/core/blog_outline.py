"""Two-step blog generation: an editable outline first, the full post second.

The outline step asks the model for JSON, which is parsed into a
BlogOutline. The user reviews and edits it; the edited outline is then the
only input of the from-outline step. Review errors block that step,
warnings only advise.
"""

import json
import math
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import Field, ValidationError

from genius_writer.core.content_sanitizer import strip_code_fences
from genius_writer.core.content_stats import WORDS_PER_MINUTE
from genius_writer.core.errors import BackendError, InputValidationError
from genius_writer.core.schemas_documents import StoredModel, new_id
from genius_writer.core.schemas_generation import GenerationStage
from genius_writer.core.tools import ToolType, assemble_payload, get_tool

DEFAULT_SECTION_WORDS = 250
TITLE_MAX_CHARS = 70
META_DESCRIPTION_RANGE = (120, 160)
RECOMMENDED_MIN_SECTIONS = 3


@dataclass(frozen=True)
class LengthGuideline:
    words: int
    sections: int
    words_per_section: int


LENGTH_GUIDELINES: dict[str, LengthGuideline] = {
    "short": LengthGuideline(words=500, sections=3, words_per_section=150),
    "medium": LengthGuideline(words=1000, sections=4, words_per_section=250),
    "long": LengthGuideline(words=2000, sections=6, words_per_section=300),
}


def length_guideline(value: Optional[str]) -> LengthGuideline:
    """Map a length selection ("Long (2000)", "short", ...) to its guideline; medium by default."""
    key = (value or "").strip().split(" ")[0].lower()
    return LENGTH_GUIDELINES.get(key, LENGTH_GUIDELINES["medium"])


def parse_keywords(value: Any) -> list[str]:
    if isinstance(value, list):
        items = value
    else:
        items = str(value or "").split(",")
    return [str(k).strip() for k in items if str(k).strip()]


class BlogSection(StoredModel):
    """One H2 section of the outline."""
    id: str = Field(default_factory=new_id)
    heading: str = ""
    subheadings: list[str] = Field(default_factory=list)
    key_points: list[str] = Field(default_factory=list)
    estimated_words: Optional[int] = None


class BlogOutline(StoredModel):
    """Editable structure of a blog post."""
    title: str = ""
    meta_description: str = ""
    introduction: str = ""
    sections: list[BlogSection] = Field(default_factory=list)
    conclusion: str = ""
    target_keywords: list[str] = Field(default_factory=list)
    estimated_read_time: int = 0
    tone: Optional[str] = None


@dataclass
class OutlineReview:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class OutlineStats:
    total_sections: int
    total_subheadings: int
    total_key_points: int
    estimated_words: int
    estimated_read_time: int


def _section_words(section: BlogSection) -> int:
    return section.estimated_words or DEFAULT_SECTION_WORDS


def estimate_reading_time(outline: BlogOutline) -> int:
    words = sum(_section_words(s) for s in outline.sections)
    return math.ceil(words / WORDS_PER_MINUTE)


def outline_stats(outline: BlogOutline) -> OutlineStats:
    return OutlineStats(
        total_sections=len(outline.sections),
        total_subheadings=sum(len(s.subheadings) for s in outline.sections),
        total_key_points=sum(len(s.key_points) for s in outline.sections),
        estimated_words=sum(_section_words(s) for s in outline.sections),
        estimated_read_time=estimate_reading_time(outline),
    )


def review_outline(outline: BlogOutline) -> OutlineReview:
    """
    Check an outline before the full post is generated.

    Missing title, meta description, sections or section headings are
    errors. SEO length advice, thin sections and missing keywords are
    warnings.
    """
    review = OutlineReview()

    title = outline.title.strip()
    if not title:
        review.errors.append("Title is required")
    elif len(title) > TITLE_MAX_CHARS:
        review.warnings.append("Title is too long for SEO (recommended: 60 characters)")

    low, high = META_DESCRIPTION_RANGE
    meta = outline.meta_description.strip()
    if not meta:
        review.errors.append("Meta description is required")
    elif not low <= len(meta) <= high:
        review.warnings.append(f"Meta description should be {low}-{high} characters for optimal SEO")

    if not outline.sections:
        review.errors.append("At least one section is required")
    elif len(outline.sections) < RECOMMENDED_MIN_SECTIONS:
        review.warnings.append("Consider adding more sections for better content depth (recommended: 3-7)")

    for number, section in enumerate(outline.sections, start=1):
        if not section.heading.strip():
            review.errors.append(f"Section {number}: Heading is required")
        if not section.subheadings:
            review.warnings.append(f"Section {number}: Consider adding subheadings for better structure")
        if not section.key_points:
            review.warnings.append(f"Section {number}: Add key points for better content guidance")

    if not outline.target_keywords:
        review.warnings.append("Add target keywords for better SEO optimization")

    return review


def parse_outline(text: str) -> BlogOutline:
    """
    Parse the model's JSON answer to an outline request.

    Raises:
        BackendError: The answer is not a readable outline
    """
    try:
        data = json.loads(strip_code_fences(text.strip()))
        outline = BlogOutline.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise BackendError(f"Model returned an unreadable outline: {e}") from e
    if not outline.estimated_read_time:
        outline.estimated_read_time = estimate_reading_time(outline)
    return outline


def outline_payload(inputs: dict[str, Any]) -> dict[str, Any]:
    """
    Validate the edited outline that drives a from-outline request.

    Raises:
        InputValidationError: Missing, malformed or incomplete outline
    """
    raw = inputs.get("outline")
    if isinstance(raw, BlogOutline):
        outline = raw
    else:
        try:
            outline = BlogOutline.model_validate(raw)
        except ValidationError as e:
            raise InputValidationError(f"Malformed outline: {e}", fields=["outline"]) from e

    review = review_outline(outline)
    if not review.is_valid:
        raise InputValidationError(
            f"Outline is incomplete: {', '.join(review.errors)}", fields=review.errors
        )
    return {"outline": outline.to_storage()}


def stage_payload(
    tool_id: ToolType | str,
    inputs: dict[str, Any],
    stage: GenerationStage = GenerationStage.DIRECT,
    style: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build the validated payload for a request at a given stage.

    Direct and outline requests carry the validated form; from-outline
    requests carry only the reviewed outline.
    """
    tool = get_tool(tool_id)
    if stage != GenerationStage.DIRECT and not tool.outline_first:
        raise InputValidationError(f"{tool.name} has no outline step", fields=["stage"])
    if stage == GenerationStage.FROM_OUTLINE:
        return outline_payload(inputs)
    return assemble_payload(tool.id, inputs, style)
