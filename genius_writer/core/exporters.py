"""Render saved or previewed content into downloadable export formats.

PDF is not rasterized here: the export is a print-ready HTML page that the
browser build hands to its PDF renderer. DOCX uses the Word-compatible HTML
document that Word opens directly.
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from html import escape, unescape

from genius_writer.core.errors import InputValidationError

WORD_HEADER = (
    "<html xmlns:o='urn:schemas-microsoft-com:office:office' "
    "xmlns:w='urn:schemas-microsoft-com:office:word' "
    "xmlns='http://www.w3.org/TR/REC-html40'>"
)

PRINT_STYLE = "@page { size: letter; margin: 0.5in; } body { font-family: sans-serif; }"

_HEADING_RE = re.compile(r"<h([1-6])[^>]*>(.*?)</h\1>", re.IGNORECASE | re.DOTALL)
_ITEM_RE = re.compile(r"<li[^>]*>(.*?)</li>", re.IGNORECASE | re.DOTALL)
_STRONG_RE = re.compile(r"<(?:strong|b)>(.*?)</(?:strong|b)>", re.IGNORECASE | re.DOTALL)
_EM_RE = re.compile(r"<(?:em|i)>(.*?)</(?:em|i)>", re.IGNORECASE | re.DOTALL)
_BREAK_RE = re.compile(r"<br\s*/?>|</(?:p|div|ul|ol|blockquote|tr)>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


class ExportFormat(str, Enum):
    """Export formats, named as in the plan limits."""
    PDF = "PDF"
    DOCX = "DOCX"
    HTML = "HTML"
    MD = "MD"
    TXT = "TXT"
    JSON = "JSON"

    @classmethod
    def parse(cls, value: "ExportFormat | str") -> "ExportFormat":
        try:
            return cls(str(value.value if isinstance(value, cls) else value).upper())
        except ValueError:
            raise InputValidationError(f"Unknown export format: {value}", fields=["format"]) from None


@dataclass(frozen=True)
class ExportedFile:
    """A rendered export ready to hand to the user."""

    filename: str
    media_type: str
    body: str


def _looks_like_html(content: str) -> bool:
    return bool(_TAG_RE.search(content))


def html_to_markdown(content: str) -> str:
    """Best-effort conversion of generated HTML to Markdown; Markdown passes through."""
    if not _looks_like_html(content):
        return content.strip()
    text = _HEADING_RE.sub(lambda m: f"\n{'#' * int(m.group(1))} {m.group(2).strip()}\n\n", content)
    text = _ITEM_RE.sub(lambda m: f"\n- {m.group(1).strip()}", text)
    text = _STRONG_RE.sub(r"**\1**", text)
    text = _EM_RE.sub(r"*\1*", text)
    text = _BREAK_RE.sub("\n\n", text)
    text = unescape(_TAG_RE.sub("", text))
    return _BLANK_LINES_RE.sub("\n\n", text).strip()


def html_to_text(content: str) -> str:
    text = _BREAK_RE.sub("\n\n", content)
    text = re.sub(r"</(?:h[1-6]|li)>", "\n", text, flags=re.IGNORECASE)
    text = unescape(_TAG_RE.sub("", text))
    lines = [line.strip() for line in text.splitlines()]
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


def export_basename(name: str) -> str:
    """Filename stem from a tool name: "Full Blog Post" becomes "Full_Blog_Post"."""
    return re.sub(r"\s+", "_", name.strip()) or "document"


def render_export(
    content: str,
    export_format: ExportFormat | str,
    title: str,
    tool_name: str,
) -> ExportedFile:
    """
    Render content in an export format.

    Args:
        content: Sanitized HTML (watermarked where the plan requires) or Markdown
        export_format: Target format
        title: Document title used in the page head and JSON payload
        tool_name: Tool display name, the base of the filename

    Returns:
        ExportedFile with filename, media type and body
    """
    fmt = ExportFormat.parse(export_format)
    base = export_basename(tool_name)
    safe_title = escape(title)

    if fmt == ExportFormat.DOCX:
        body = (
            f"{WORD_HEADER}<head><meta charset='utf-8'><title>{safe_title}</title></head>"
            f"<body>{content}</body></html>"
        )
        return ExportedFile(f"{base}.doc", "application/vnd.ms-word", body)

    if fmt in (ExportFormat.HTML, ExportFormat.PDF):
        style = f"<style>{PRINT_STYLE}</style>" if fmt == ExportFormat.PDF else ""
        body = (
            "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
            f"<title>{safe_title}</title>{style}</head><body>{content}</body></html>"
        )
        return ExportedFile(f"{base}.html", "text/html", body)

    if fmt == ExportFormat.MD:
        return ExportedFile(f"{base}.md", "text/markdown", html_to_markdown(content))

    if fmt == ExportFormat.TXT:
        return ExportedFile(f"{base}.txt", "text/plain", html_to_text(content))

    payload = {"title": title, "tool": tool_name, "content": content}
    return ExportedFile(f"{base}.json", "application/json", json.dumps(payload, ensure_ascii=False))
