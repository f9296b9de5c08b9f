"""Tests for the tool registry, input validation and prompt configuration."""

import pytest

from genius_writer.core.errors import InputValidationError
from genius_writer.core.prompts import build_prompt, get_prompt_config
from genius_writer.core.tools import TOOLS, OutputKind, ToolType, assemble_payload, get_tool, validate_inputs


class TestRegistry:
    def test_every_tool_is_registered(self):
        assert set(TOOLS) == set(ToolType)

    def test_unknown_tool_is_validation_error(self):
        with pytest.raises(InputValidationError) as exc_info:
            get_tool("NOT_A_TOOL")
        assert exc_info.value.fields == ["tool_id"]

    def test_image_tool_is_atomic(self):
        tool = get_tool(ToolType.IMAGE_GEN)
        assert tool.output == OutputKind.IMAGE
        assert tool.streaming is False


class TestValidateInputs:
    def test_required_field_missing(self):
        with pytest.raises(InputValidationError) as exc_info:
            validate_inputs(ToolType.SOCIAL_TWITTER, {"tone": "Witty"})
        assert exc_info.value.fields == ["topic"]

    def test_blank_required_field(self):
        with pytest.raises(InputValidationError):
            validate_inputs(ToolType.SOCIAL_TWITTER, {"topic": "   "})

    def test_unknown_field_rejected(self):
        with pytest.raises(InputValidationError) as exc_info:
            validate_inputs(ToolType.SOCIAL_TWITTER, {"topic": "AI", "bogus": 1})
        assert "bogus" in exc_info.value.fields

    def test_select_must_be_an_option(self):
        with pytest.raises(InputValidationError) as exc_info:
            validate_inputs(ToolType.SOCIAL_TWITTER, {"topic": "AI", "tone": "Grumpy"})
        assert exc_info.value.fields == ["tone"]

    def test_repeater_rows_are_validated(self):
        values = {
            "senderDetails": "ACME GmbH",
            "recipientDetails": "Client AG",
            "invoiceDate": "2025-03-14",
            "lineItems": [
                {"description": "Consulting", "quantity": "2", "unitPrice": 100},
                {"quantity": "x"},
            ],
        }
        with pytest.raises(InputValidationError) as exc_info:
            validate_inputs(ToolType.INVOICE_GEN, values)
        assert set(exc_info.value.fields) == {"lineItems[1].description", "lineItems[1].quantity"}

    def test_numbers_are_coerced(self):
        cleaned = validate_inputs(
            ToolType.INVOICE_GEN,
            {
                "senderDetails": "ACME GmbH",
                "recipientDetails": "Client AG",
                "lineItems": [{"description": "Consulting", "quantity": "2", "unitPrice": 100}],
            },
        )
        assert cleaned["lineItems"] == [{"description": "Consulting", "quantity": 2.0, "unitPrice": 100.0}]

    def test_invalid_date(self):
        with pytest.raises(InputValidationError) as exc_info:
            validate_inputs(
                ToolType.CONTRACT_GEN,
                {"partyA": "A", "partyB": "B", "objectDetails": "Website", "contractDate": "14.03.2025"},
            )
        assert exc_info.value.fields == ["contractDate"]

    def test_style_keys_are_not_form_fields(self):
        cleaned = validate_inputs(ToolType.SOCIAL_TWITTER, {"topic": "AI", "template": "modern"})
        assert cleaned == {"topic": "AI"}


class TestAssemblePayload:
    def test_merges_style(self):
        payload = assemble_payload(
            ToolType.CV_BUILDER,
            {"content": "Senior engineer"},
            style={"template": "classic", "accentColor": "#000000"},
        )
        assert payload == {"content": "Senior engineer", "template": "classic", "accentColor": "#000000"}


class TestPrompts:
    def test_prompt_lists_labelled_values(self):
        prompt = build_prompt(ToolType.SOCIAL_TWITTER, {"topic": "AI", "tone": "Witty"})
        assert prompt == "Topic: AI\nTone: Witty"

    def test_repeater_rows_rendered_as_bullets(self):
        prompt = build_prompt(
            ToolType.INVOICE_GEN,
            {
                "senderDetails": "ACME",
                "recipientDetails": "Client",
                "lineItems": [{"description": "Consulting", "quantity": 2.0}],
            },
        )
        assert "- Description: Consulting, Qty: 2.0" in prompt

    def test_styled_tool_includes_template(self):
        prompt = build_prompt(ToolType.CV_BUILDER, {"content": "Engineer", "template": "classic"})
        assert "Layout template: classic" in prompt

    def test_unstyled_tool_ignores_template(self):
        prompt = build_prompt(ToolType.SOCIAL_TWITTER, {"topic": "AI", "template": "classic"})
        assert "template" not in prompt

    def test_voice_hint_appended(self):
        config = get_prompt_config(ToolType.BLOG_INTRO, {"topic": "AI"}, voice_hint="Pirate: says arr")
        assert config.system_instruction.endswith(
            "BRAND VOICE: Pirate: says arr\nEnsure the output strictly adheres to this voice/persona."
        )
        assert config.prompt == "Topic: AI"
