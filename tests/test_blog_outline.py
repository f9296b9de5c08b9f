"""Tests for the blog outline model, review and prompts."""

import json

import pytest

from genius_writer.core.blog_outline import (
    LENGTH_GUIDELINES,
    BlogOutline,
    BlogSection,
    length_guideline,
    outline_payload,
    outline_stats,
    parse_keywords,
    parse_outline,
    review_outline,
    stage_payload,
)
from genius_writer.core.errors import BackendError, InputValidationError
from genius_writer.core.prompts import (
    OUTLINE_SYSTEM_INSTRUCTION,
    SYSTEM_INSTRUCTIONS,
    build_outline_prompt,
    build_post_prompt,
    get_prompt_config,
)
from genius_writer.core.schemas_generation import GenerationStage
from genius_writer.core.tools import ToolType

META = "A practical guide to planning, writing and promoting content that ranks, converts and keeps readers coming back for more every week."


def make_outline(**overrides) -> BlogOutline:
    fields = {
        "title": "Content Marketing Basics",
        "meta_description": META,
        "introduction": "Why content matters.",
        "sections": [
            BlogSection(
                heading=f"Part {n}",
                subheadings=[f"Sub {n}.1", f"Sub {n}.2"],
                key_points=[f"Point {n}"],
                estimated_words=200,
            )
            for n in range(1, 4)
        ],
        "conclusion": "Start today.",
        "target_keywords": ["content", "marketing"],
    }
    fields.update(overrides)
    return BlogOutline(**fields)


MODEL_ANSWER = {
    "title": "Remote Work Guide",
    "metaDescription": META,
    "introduction": "Intro",
    "sections": [
        {"heading": "Tools", "subheadings": ["Chat"], "keyPoints": ["Pick one"], "estimatedWords": 300},
        {"heading": "Habits", "subheadings": [], "keyPoints": []},
    ],
    "conclusion": "Done",
    "targetKeywords": ["remote work"],
}


class TestInputs:
    def test_length_guideline(self):
        assert length_guideline("Long (2000)") == LENGTH_GUIDELINES["long"]
        assert length_guideline("short") == LENGTH_GUIDELINES["short"]
        assert length_guideline(None) == LENGTH_GUIDELINES["medium"]
        assert length_guideline("epic") == LENGTH_GUIDELINES["medium"]

    def test_parse_keywords(self):
        assert parse_keywords(" seo, ,content ") == ["seo", "content"]
        assert parse_keywords(["a", " "]) == ["a"]
        assert parse_keywords(None) == []


class TestParseOutline:
    def test_fenced_json_answer(self):
        outline = parse_outline(f"```json\n{json.dumps(MODEL_ANSWER)}\n```")

        assert outline.title == "Remote Work Guide"
        assert outline.sections[0].key_points == ["Pick one"]
        assert outline.sections[0].id != outline.sections[1].id
        # 300 + default 250 words at 200 wpm
        assert outline.estimated_read_time == 3

    def test_unreadable_answer(self):
        with pytest.raises(BackendError):
            parse_outline("Here is your outline: ...")
        with pytest.raises(BackendError):
            parse_outline('{"sections": "not a list"}')


class TestReview:
    def test_complete_outline(self):
        review = review_outline(make_outline())
        assert review.is_valid
        assert review.warnings == []

    def test_errors(self):
        outline = make_outline(title=" ", meta_description="", sections=[BlogSection(heading="")])
        review = review_outline(outline)
        assert not review.is_valid
        assert review.errors == [
            "Title is required",
            "Meta description is required",
            "Section 1: Heading is required",
        ]

    def test_no_sections(self):
        assert "At least one section is required" in review_outline(make_outline(sections=[])).errors

    def test_warnings(self):
        outline = make_outline(
            title="x" * 71,
            meta_description="Too short",
            sections=[BlogSection(heading="Only")],
            target_keywords=[],
        )
        review = review_outline(outline)
        assert review.is_valid
        assert len(review.warnings) == 6

    def test_stats(self):
        stats = outline_stats(make_outline())
        assert stats.total_sections == 3
        assert stats.total_subheadings == 6
        assert stats.total_key_points == 3
        assert stats.estimated_words == 600
        assert stats.estimated_read_time == 3


class TestPayload:
    def test_outline_payload_is_camel_case(self):
        payload = outline_payload({"outline": make_outline()})
        assert payload["outline"]["metaDescription"] == META
        assert payload["outline"]["sections"][0]["keyPoints"] == ["Point 1"]

    def test_outline_payload_accepts_dict(self):
        payload = outline_payload({"outline": make_outline().to_storage()})
        assert payload["outline"]["title"] == "Content Marketing Basics"

    def test_incomplete_outline_refused(self):
        with pytest.raises(InputValidationError) as exc_info:
            outline_payload({"outline": make_outline(title="")})
        assert exc_info.value.fields == ["Title is required"]

    def test_missing_outline_refused(self):
        with pytest.raises(InputValidationError):
            outline_payload({})

    def test_stage_requires_outline_tool(self):
        with pytest.raises(InputValidationError):
            stage_payload(ToolType.SOCIAL_TWITTER, {"topic": "AI"}, GenerationStage.OUTLINE)

    def test_outline_stage_validates_form(self):
        with pytest.raises(InputValidationError):
            stage_payload(ToolType.BLOG_FULL, {}, GenerationStage.OUTLINE)
        payload = stage_payload(ToolType.BLOG_FULL, {"topic": "Remote work"}, GenerationStage.OUTLINE)
        assert payload["topic"] == "Remote work"


class TestPrompts:
    def test_outline_prompt(self):
        prompt = build_outline_prompt(
            {"topic": "Remote work", "keywords": "remote, async", "length": "Long (2000)"}
        )
        assert 'topic "Remote work"' in prompt
        assert "Target keywords: remote, async" in prompt
        assert "2000 words in 6 main sections" in prompt
        assert '"metaDescription"' in prompt

    def test_post_prompt_follows_outline(self):
        prompt = build_post_prompt(make_outline())
        assert "# Content Marketing Basics" in prompt
        assert "## Part 2" in prompt
        assert "### Sub 3.2" in prompt
        assert "- Point 1" in prompt
        assert "Total length: ~600 words" in prompt

    def test_prompt_config_per_stage(self):
        outline_config = get_prompt_config(
            ToolType.BLOG_FULL, {"topic": "Remote work"}, stage=GenerationStage.OUTLINE
        )
        assert outline_config.system_instruction == OUTLINE_SYSTEM_INSTRUCTION

        post_config = get_prompt_config(
            ToolType.BLOG_FULL,
            outline_payload({"outline": make_outline()}),
            voice_hint="Friendly",
            stage=GenerationStage.FROM_OUTLINE,
        )
        assert post_config.system_instruction.startswith(SYSTEM_INSTRUCTIONS[ToolType.BLOG_FULL])
        assert "BRAND VOICE: Friendly" in post_config.system_instruction
        assert "## Part 1" in post_config.prompt
