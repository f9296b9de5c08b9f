"""Prompt configuration per tool.

The user prompt is rendered from the tool's field schema ("Label: value"
lines, repeater rows as bullet lines), so adding a field to a tool needs no
prompt change. Only the system instruction is tool-specific.
"""

import json
import math
from dataclasses import dataclass
from typing import Any

from genius_writer.core.blog_outline import BlogOutline, length_guideline, parse_keywords
from genius_writer.core.content_stats import WORDS_PER_MINUTE
from genius_writer.core.schemas_generation import GenerationStage
from genius_writer.core.tools import FieldKind, InputField, ToolType, get_tool

DEFAULT_SYSTEM_INSTRUCTION = "You are a helpful AI writing assistant."

HTML_OUTPUT_RULE = (
    "Output clean semantic HTML only (no <html>, <head> or <body>, no markdown code fences)."
)

SYSTEM_INSTRUCTIONS: dict[ToolType, str] = {
    ToolType.TRANSLATE: (
        "You are a professional translator. Provide a translation that is culturally nuanced "
        "and native-sounding. Preserve the original tone. Do NOT add a preamble; output only "
        "the target text."
    ),
    ToolType.TEXT_POLISHER: (
        "You are an expert editor. Rewrite the text to match the requested goal while fixing "
        "all grammar and clarity issues. Maintain the original meaning."
    ),
    ToolType.SUMMARIZER: "You are a precision summarizer. Condense the text in the requested format.",
    ToolType.DATA_ANALYSIS: (
        "You are a Senior Data Analyst. Identify key trends, anomalies and insights, and give "
        "actionable recommendations for the user's goal."
    ),
    ToolType.CV_BUILDER: (
        "You are an expert career coach and resume writer. Write 4-6 result-oriented bullet "
        "points using the 'Action Verb + Task + Result' formula, quantified where possible. "
        "Output strictly as an HTML unordered list."
    ),
    ToolType.SMART_EDITOR: "You are a professional editor and writing companion.",
    ToolType.HR_JOB_DESC: "You are an HR specialist who writes inclusive, clear and attractive job descriptions.",
    ToolType.HR_INTERVIEW_PREP: (
        "You are a hiring manager. Provide 5 behavioral and 5 technical interview questions "
        "with suggested answers using the STAR method."
    ),
    ToolType.SOCIAL_TWITTER: (
        "You are a social media manager for Twitter/X. Be concise and punchy, use emojis "
        "sparingly and end with 2-3 relevant hashtags. Separate thread tweets with '---'."
    ),
    ToolType.SOCIAL_LINKEDIN: (
        "You are a LinkedIn thought leader. Structure: hook, substance, takeaway, ask. "
        "Use short paragraphs."
    ),
    ToolType.BLOG_INTRO: "You are a professional blog writer. Write an introduction that hooks the reader immediately.",
    ToolType.BLOG_FULL: (
        "You are an expert content writer. Write a comprehensive, SEO-optimized blog post "
        "with H2 and H3 headers in Markdown."
    ),
    ToolType.EMAIL_NEWSLETTER: "You are an email marketing specialist. Write an engaging newsletter.",
    ToolType.EMAIL_PROMO: "You are an expert copywriter. Write a high-converting promotional email.",
    ToolType.EMAIL_TEMPLATE: "You are a professional correspondence writer. Write a clear, ready-to-send email.",
    ToolType.SEO_KEYWORDS: "You are an SEO specialist. Generate a list of high-volume, relevant keywords.",
    ToolType.SEO_META_TAGS: "You are an SEO specialist. Write optimized title tags and meta descriptions.",
    ToolType.STARTUP_VALIDATOR: (
        "You are a startup advisor. Analyze the idea with a SWOT analysis and give critical feedback."
    ),
    ToolType.PRODUCT_DESC: "You are a product marketer. Write compelling product descriptions that sell.",
    ToolType.INVOICE_GEN: (
        "You are a German bookkeeping assistant. Produce a complete, legally compliant invoice "
        "(§14 UStG) with computed net, VAT and gross totals. " + HTML_OUTPUT_RULE
    ),
    ToolType.CONTRACT_GEN: (
        "You are a German legal drafting assistant. Produce a clear contract draft with "
        "numbered sections. It is a draft, not legal advice. " + HTML_OUTPUT_RULE
    ),
    ToolType.IMAGE_GEN: "Generate an image matching the description.",
    ToolType.TEXT_TO_SPEECH: "Read the text aloud naturally.",
}

# Tools whose output is styled HTML and therefore honours template/accent color
STYLED_TOOLS = frozenset({ToolType.INVOICE_GEN, ToolType.CONTRACT_GEN, ToolType.CV_BUILDER})


OUTLINE_SYSTEM_INSTRUCTION = (
    "You are an expert content strategist. Plan SEO-friendly blog posts with a logical "
    "flow between sections. Return valid JSON only, no markdown formatting and no "
    "additional text."
)


def build_outline_prompt(payload: dict[str, Any]) -> str:
    """Prompt asking for a JSON outline of the post described by the form."""
    keywords = parse_keywords(payload.get("keywords"))
    guideline = length_guideline(payload.get("length"))
    tone = payload.get("tone") or "professional"
    example = {
        "title": "How to Master Content Marketing",
        "metaDescription": "Discover proven content marketing strategies...",
        "introduction": "Brief overview of what readers will learn...",
        "sections": [
            {
                "heading": "Understanding Content Marketing Fundamentals",
                "subheadings": ["What is Content Marketing?", "Why It Matters"],
                "keyPoints": ["Define content marketing", "Explain the business value"],
                "estimatedWords": guideline.words_per_section,
            }
        ],
        "conclusion": "Summary and next steps...",
        "targetKeywords": keywords,
        "estimatedReadTime": math.ceil(guideline.words / WORDS_PER_MINUTE),
        "tone": tone,
    }
    return "\n".join(
        [
            f'Generate a blog outline for the topic "{payload.get("topic", "")}".',
            f"Target keywords: {', '.join(keywords) or 'none given'}",
            f"Tone: {tone}",
            f"Target length: {guideline.words} words in {guideline.sections} main sections",
            f"Audience: {payload.get('audience') or 'general'}",
            "",
            "Include an SEO title (60 characters max, with the primary keyword), a meta "
            "description of 120-160 characters, an introduction, "
            f"{guideline.sections} H2 sections with 2-3 H3 subheadings and 3-5 key points each "
            f"(about {guideline.words_per_section} words per section), and a conclusion with a "
            "call to action.",
            "",
            "Answer with JSON in exactly this shape:",
            json.dumps(example, indent=2),
        ]
    )


def build_post_prompt(outline: BlogOutline) -> str:
    """Prompt asking for the full post that follows an edited outline."""
    sections = []
    for section in outline.sections:
        lines = [f"## {section.heading}", ""]
        lines.extend(f"### {sub}" for sub in section.subheadings)
        if section.key_points:
            lines.append("Key points to cover:")
            lines.extend(f"- {point}" for point in section.key_points)
        if section.estimated_words:
            lines.append(f"Target word count: ~{section.estimated_words} words")
        sections.append("\n".join(lines))

    total_words = sum(s.estimated_words or 0 for s in outline.sections)
    return "\n\n".join(
        [
            "Write a complete, engaging blog post that follows this outline exactly.",
            f"# {outline.title}",
            f"Meta description: {outline.meta_description}",
            f"## Introduction\n{outline.introduction}",
            "\n\n---\n\n".join(sections),
            f"## Conclusion\n{outline.conclusion}",
            f"Tone: {outline.tone or 'professional'}",
            f"Target keywords: {', '.join(outline.target_keywords) or 'none given'}",
            (
                f"Total length: ~{total_words} words. " if total_words else ""
            )
            + "Use H1 for the title, H2 for sections and H3 for subsections, in Markdown.",
        ]
    )


@dataclass(frozen=True)
class PromptConfig:
    """Everything a backend needs to issue one generation."""

    tool_id: ToolType
    system_instruction: str
    prompt: str


def _render_value(field: InputField, value: Any) -> str:
    if field.kind == FieldKind.REPEATER and isinstance(value, list):
        lines = []
        for row in value:
            cells = [f"{sub.label}: {row[sub.name]}" for sub in field.fields if sub.name in row]
            lines.append("- " + ", ".join(cells))
        return "\n" + "\n".join(lines)
    return str(value)


def build_prompt(tool_id: ToolType | str, payload: dict[str, Any]) -> str:
    """Render the user prompt for a validated payload."""
    tool = get_tool(tool_id)
    lines = [
        f"{field.label}: {_render_value(field, payload[field.name])}"
        for field in tool.inputs
        if payload.get(field.name) not in (None, "", [])
    ]

    if tool.id in STYLED_TOOLS:
        if payload.get("template"):
            lines.append(f"Layout template: {payload['template']}")
        if payload.get("accentColor"):
            lines.append(f"Accent color: {payload['accentColor']}")

    return "\n".join(lines)


def get_prompt_config(
    tool_id: ToolType | str,
    payload: dict[str, Any],
    voice_hint: str | None = None,
    stage: GenerationStage = GenerationStage.DIRECT,
) -> PromptConfig:
    """
    Build the prompt configuration for one generation.

    Args:
        tool_id: Tool identifier
        payload: Validated form values plus style parameters, or {"outline": ...}
            for a from-outline request
        voice_hint: Optional brand voice / persona description
        stage: Outline-flow step, if any

    Returns:
        PromptConfig with the voice hint folded into the system instruction
    """
    tool = get_tool(tool_id)
    if stage == GenerationStage.OUTLINE:
        system_instruction = OUTLINE_SYSTEM_INSTRUCTION
        prompt = build_outline_prompt(payload)
    elif stage == GenerationStage.FROM_OUTLINE:
        system_instruction = SYSTEM_INSTRUCTIONS.get(tool.id, DEFAULT_SYSTEM_INSTRUCTION)
        prompt = build_post_prompt(BlogOutline.model_validate(payload["outline"]))
    else:
        system_instruction = SYSTEM_INSTRUCTIONS.get(tool.id, DEFAULT_SYSTEM_INSTRUCTION)
        prompt = build_prompt(tool.id, payload)

    if voice_hint:
        system_instruction += (
            f"\n\nBRAND VOICE: {voice_hint}\nEnsure the output strictly adheres to this voice/persona."
        )

    return PromptConfig(
        tool_id=tool.id,
        system_instruction=system_instruction,
        prompt=prompt,
    )
