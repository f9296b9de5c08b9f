"""Tool registry and per-tool input schemas.

Each tool declares its form as a list of typed fields. Form values are
validated against that schema before they are assembled into a generation
payload, so a malformed form never leaves the client.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from genius_writer.core.errors import InputValidationError


class ToolType(str, Enum):
    """Identifiers of the writing tools."""

    TRANSLATE = "TRANSLATE"
    CV_BUILDER = "CV_BUILDER"
    SMART_EDITOR = "SMART_EDITOR"
    SOCIAL_TWITTER = "SOCIAL_TWITTER"
    SOCIAL_LINKEDIN = "SOCIAL_LINKEDIN"
    BLOG_INTRO = "BLOG_INTRO"
    BLOG_FULL = "BLOG_FULL"
    EMAIL_NEWSLETTER = "EMAIL_NEWSLETTER"
    EMAIL_PROMO = "EMAIL_PROMO"
    PRODUCT_DESC = "PRODUCT_DESC"
    DATA_ANALYSIS = "DATA_ANALYSIS"
    IMAGE_GEN = "IMAGE_GEN"
    TEXT_TO_SPEECH = "TEXT_TO_SPEECH"
    SEO_KEYWORDS = "SEO_KEYWORDS"
    SEO_META_TAGS = "SEO_META_TAGS"
    HR_JOB_DESC = "HR_JOB_DESC"
    HR_INTERVIEW_PREP = "HR_INTERVIEW_PREP"
    STARTUP_VALIDATOR = "STARTUP_VALIDATOR"
    TEXT_POLISHER = "TEXT_POLISHER"
    SUMMARIZER = "SUMMARIZER"
    INVOICE_GEN = "INVOICE_GEN"
    CONTRACT_GEN = "CONTRACT_GEN"
    EMAIL_TEMPLATE = "EMAIL_TEMPLATE"


class FieldKind(str, Enum):
    """Kinds of form field a tool can declare."""

    TEXT = "text"
    TEXTAREA = "textarea"
    SELECT = "select"
    NUMBER = "number"
    DATE = "date"
    REPEATER = "repeater"


class OutputKind(str, Enum):
    """What a tool produces."""

    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"


class InputField(BaseModel):
    """One form field. REPEATER fields nest their row schema in `fields`."""

    name: str
    label: str
    kind: FieldKind = FieldKind.TEXT
    required: bool = False
    options: list[str] = Field(default_factory=list)
    max_length: int = 20_000
    fields: list["InputField"] = Field(default_factory=list)


InputField.model_rebuild()


class ToolSpec(BaseModel):
    """Static description of a tool."""

    id: ToolType
    name: str
    category: str
    output: OutputKind = OutputKind.TEXT
    streaming: bool = True
    inputs: list[InputField] = Field(default_factory=list)
    # Generated in two steps: an editable outline, then the full text
    outline_first: bool = False


# Style parameters merged into every payload, not validated as form fields
STYLE_KEYS = ("template", "accentColor")

VAT_RATES = ["19%", "7%", "0% (Exempt)", "0% (Small Business)"]
PRICE_MODES = ["Net (Plus VAT)", "Gross (Incl. VAT)"]


def _text(name: str, label: str, required: bool = False) -> InputField:
    return InputField(name=name, label=label, kind=FieldKind.TEXT, required=required)


def _area(name: str, label: str, required: bool = False) -> InputField:
    return InputField(name=name, label=label, kind=FieldKind.TEXTAREA, required=required)


def _select(name: str, label: str, options: list[str]) -> InputField:
    return InputField(name=name, label=label, kind=FieldKind.SELECT, options=options)


TOOLS: dict[ToolType, ToolSpec] = {
    tool.id: tool
    for tool in [
        ToolSpec(
            id=ToolType.SMART_EDITOR,
            name="Smart Document Editor",
            category="Business",
            inputs=[_area("content", "Content", required=True)],
        ),
        ToolSpec(
            id=ToolType.CV_BUILDER,
            name="CV / Resume Builder",
            category="Business",
            inputs=[_area("content", "Role / Description", required=True)],
        ),
        ToolSpec(
            id=ToolType.TRANSLATE,
            name="Translator",
            category="Utility",
            inputs=[
                _area("content", "Source Text", required=True),
                _text("targetLang", "Target Language"),
            ],
        ),
        ToolSpec(
            id=ToolType.INVOICE_GEN,
            name="Invoice Generator",
            category="Business",
            inputs=[
                _select(
                    "invoiceType",
                    "Invoice Template",
                    [
                        "Standard Commercial (19% VAT)",
                        "Reduced Rate (7% VAT)",
                        "Small Business (Kleinunternehmer §19)",
                        "Private (No VAT)",
                    ],
                ),
                _text("invoiceNumber", "Invoice Number"),
                InputField(name="invoiceDate", label="Date of Issue", kind=FieldKind.DATE),
                _area("senderDetails", "Sender (You)", required=True),
                _area("recipientDetails", "Recipient (Client)", required=True),
                InputField(
                    name="lineItems",
                    label="Services / Goods",
                    kind=FieldKind.REPEATER,
                    required=True,
                    fields=[
                        _text("description", "Description", required=True),
                        InputField(name="quantity", label="Qty", kind=FieldKind.NUMBER),
                        InputField(name="unitPrice", label="Price", kind=FieldKind.NUMBER),
                    ],
                ),
                _select("vatRate", "VAT Rate", VAT_RATES),
                _select("priceMode", "Price Calculation Mode", PRICE_MODES),
                _text("paymentTerms", "Payment Terms"),
            ],
        ),
        ToolSpec(
            id=ToolType.CONTRACT_GEN,
            name="Contract Generator",
            category="Business",
            inputs=[
                _select(
                    "contractType",
                    "Contract Type",
                    ["Service Agreement", "Purchase Agreement", "Freelance Contract", "NDA"],
                ),
                InputField(name="contractDate", label="Contract Date", kind=FieldKind.DATE),
                _area("partyA", "Party A", required=True),
                _area("partyB", "Party B", required=True),
                _area("objectDetails", "Subject of the Contract", required=True),
                InputField(name="price", label="Price", kind=FieldKind.NUMBER),
                _select("vatRate", "VAT Rate", VAT_RATES),
                _select("priceMode", "Price Calculation Mode", PRICE_MODES),
                _text("paymentMethod", "Payment Method"),
                _area("conditions", "Special Conditions"),
            ],
        ),
        ToolSpec(
            id=ToolType.EMAIL_TEMPLATE,
            name="Email Template",
            category="Email",
            inputs=[
                _select(
                    "emailType",
                    "Email Type",
                    ["Application", "Complaint", "Cancellation", "Reminder", "Follow-up"],
                ),
                _area("recipientInfo", "Recipient"),
                _area("keyPoints", "Key Points", required=True),
                _select("tone", "Tone", ["Formal", "Friendly", "Firm"]),
            ],
        ),
        ToolSpec(
            id=ToolType.TEXT_POLISHER,
            name="Text Polisher",
            category="Utility",
            inputs=[
                _area("textToPolish", "Text to Polish", required=True),
                _select(
                    "polishGoal",
                    "Goal",
                    [
                        "Professional & Formal",
                        "Friendly & Casual",
                        "Concise & Direct",
                        "Persuasive",
                        "Grammar Fix Only",
                    ],
                ),
            ],
        ),
        ToolSpec(
            id=ToolType.SUMMARIZER,
            name="Summarizer",
            category="Utility",
            inputs=[
                _area("textToSummarize", "Text to Summarize", required=True),
                _select(
                    "summaryFormat",
                    "Format",
                    ["Bullet Points", "Executive Summary (Paragraph)", "ELI5 (Simple)", "Action Items"],
                ),
            ],
        ),
        ToolSpec(
            id=ToolType.IMAGE_GEN,
            name="AI Image Generator",
            category="Creative",
            output=OutputKind.IMAGE,
            streaming=False,
            inputs=[
                _area("prompt", "Image Description", required=True),
                _select("aspectRatio", "Aspect Ratio", ["1:1", "16:9", "9:16", "4:3", "3:4"]),
            ],
        ),
        ToolSpec(
            id=ToolType.TEXT_TO_SPEECH,
            name="Text to Speech",
            category="Creative",
            output=OutputKind.AUDIO,
            streaming=False,
            inputs=[
                _area("content", "Text", required=True),
                _select("voice", "Voice", ["Kore", "Puck", "Charon", "Fenrir"]),
            ],
        ),
        ToolSpec(
            id=ToolType.SOCIAL_TWITTER,
            name="Twitter/X Post",
            category="Social",
            inputs=[
                _text("topic", "Topic", required=True),
                _select("tone", "Tone", ["Witty", "Professional", "Controversial", "Helpful"]),
            ],
        ),
        ToolSpec(
            id=ToolType.SOCIAL_LINKEDIN,
            name="LinkedIn Post",
            category="Social",
            inputs=[
                _text("topic", "Topic", required=True),
                _text("audience", "Audience"),
                _select("tone", "Tone", ["Thought Leadership", "Storytelling", "Professional"]),
            ],
        ),
        ToolSpec(
            id=ToolType.EMAIL_NEWSLETTER,
            name="Newsletter",
            category="Email",
            inputs=[
                _text("topic", "Topic", required=True),
                _area("highlights", "Highlights"),
                _text("cta", "Call to Action"),
            ],
        ),
        ToolSpec(
            id=ToolType.EMAIL_PROMO,
            name="Promotional Email",
            category="Email",
            inputs=[
                _text("product", "Product", required=True),
                _text("offer", "Offer"),
                _select("urgency", "Urgency", ["High", "Medium", "Low"]),
            ],
        ),
        ToolSpec(
            id=ToolType.BLOG_INTRO,
            name="Blog Intro",
            category="Blog",
            inputs=[
                _text("topic", "Topic", required=True),
                _select("tone", "Tone", ["Conversational", "Formal", "Excited"]),
                _select(
                    "hookType", "Hook Type", ["Question", "Statistic", "Story", "Controversial Statement"]
                ),
            ],
        ),
        ToolSpec(
            id=ToolType.BLOG_FULL,
            name="Full Blog Post",
            category="Blog",
            outline_first=True,
            inputs=[
                _text("topic", "Topic", required=True),
                _text("keywords", "Keywords (comma separated)"),
                _text("audience", "Audience"),
                _select("tone", "Tone", ["Informative", "Opinionated"]),
                _select("length", "Length", ["Short (500)", "Medium (1000)", "Long (2000)"]),
            ],
        ),
        ToolSpec(
            id=ToolType.SEO_KEYWORDS,
            name="Keyword Researcher",
            category="SEO",
            inputs=[_text("topic", "Topic", required=True), _text("region", "Region")],
        ),
        ToolSpec(
            id=ToolType.SEO_META_TAGS,
            name="Meta Tag Generator",
            category="SEO",
            inputs=[
                _text("topic", "Topic", required=True),
                _text("keyword", "Keyword"),
                _select("tone", "Tone", ["Clickbait", "Professional", "Descriptive"]),
            ],
        ),
        ToolSpec(
            id=ToolType.HR_JOB_DESC,
            name="Job Description",
            category="HR",
            inputs=[
                _text("role", "Role", required=True),
                _text("company", "Company"),
                _area("responsibilities", "Responsibilities"),
                _area("requirements", "Requirements"),
                _select("tone", "Tone", ["Formal", "Exciting/Startup", "Casual"]),
            ],
        ),
        ToolSpec(
            id=ToolType.HR_INTERVIEW_PREP,
            name="Interview Prep",
            category="HR",
            inputs=[_text("role", "Role", required=True), _text("industry", "Industry")],
        ),
        ToolSpec(
            id=ToolType.STARTUP_VALIDATOR,
            name="Startup Idea Validator",
            category="Strategy",
            inputs=[_area("idea", "Idea", required=True), _text("market", "Market")],
        ),
        ToolSpec(
            id=ToolType.PRODUCT_DESC,
            name="Product Description",
            category="Business",
            inputs=[
                _text("productName", "Product Name", required=True),
                _area("features", "Features"),
                _text("audience", "Audience"),
            ],
        ),
        ToolSpec(
            id=ToolType.DATA_ANALYSIS,
            name="Data Analyst",
            category="Utility",
            inputs=[_area("data", "Data / Report", required=True), _text("goal", "Analysis Goal")],
        ),
    ]
}


def get_tool(tool_id: ToolType | str) -> ToolSpec:
    """Look up a tool; unknown ids are a validation failure."""
    try:
        return TOOLS[ToolType(tool_id)]
    except (ValueError, KeyError):
        raise InputValidationError(f"Unknown tool: {tool_id}", fields=["tool_id"])


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def _validate_field(field: InputField, value: Any, path: str, errors: list[str]) -> Any:
    if _is_blank(value):
        if field.required:
            errors.append(path)
        return value

    if field.kind in (FieldKind.TEXT, FieldKind.TEXTAREA):
        if not isinstance(value, str) or len(value) > field.max_length:
            errors.append(path)
        return value

    if field.kind == FieldKind.SELECT:
        if field.options and value not in field.options:
            errors.append(path)
        return value

    if field.kind == FieldKind.NUMBER:
        if isinstance(value, bool):
            errors.append(path)
            return value
        try:
            return float(value)
        except (TypeError, ValueError):
            errors.append(path)
            return value

    if field.kind == FieldKind.DATE:
        try:
            date.fromisoformat(str(value))
        except ValueError:
            errors.append(path)
        return value

    # REPEATER: a list of rows, each validated against the nested schema
    if not isinstance(value, list):
        errors.append(path)
        return value
    rows = []
    for index, row in enumerate(value):
        if not isinstance(row, dict):
            errors.append(f"{path}[{index}]")
            continue
        rows.append(_validate_group(field.fields, row, f"{path}[{index}].", errors))
    return rows


def _validate_group(
    fields: list[InputField], values: dict[str, Any], prefix: str, errors: list[str]
) -> dict[str, Any]:
    known = {f.name: f for f in fields}
    for key in values:
        if key not in known:
            errors.append(f"{prefix}{key}")

    cleaned: dict[str, Any] = {}
    for field in fields:
        value = _validate_field(field, values.get(field.name), f"{prefix}{field.name}", errors)
        if value is not None:
            cleaned[field.name] = value
    return cleaned


def validate_inputs(tool_id: ToolType | str, form_values: dict[str, Any]) -> dict[str, Any]:
    """
    Validate form values against a tool's schema.

    Args:
        tool_id: Tool identifier
        form_values: Raw form values (scalars or lists of row dicts)

    Returns:
        Cleaned values (numbers coerced to float, unset fields dropped)

    Raises:
        InputValidationError: Listing every offending field path
    """
    tool = get_tool(tool_id)
    if not isinstance(form_values, dict):
        raise InputValidationError("Form values must be a mapping", fields=["inputs"])

    errors: list[str] = []
    values = {k: v for k, v in form_values.items() if k not in STYLE_KEYS}
    cleaned = _validate_group(tool.inputs, values, "", errors)
    if errors:
        raise InputValidationError(
            f"Invalid input for {tool.id.value}: {', '.join(errors)}", fields=errors
        )
    return cleaned


def assemble_payload(
    tool_id: ToolType | str,
    form_values: dict[str, Any],
    style: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Validate form values and merge style parameters into one payload."""
    payload = validate_inputs(tool_id, form_values)
    for key in STYLE_KEYS:
        if key in form_values and form_values[key] is not None:
            payload[key] = form_values[key]
    if style:
        payload.update({k: v for k, v in style.items() if v is not None})
    return payload
