"""Content sanitization for generated and rich-text output.

Two passes run before anything reaches a render path:

- strip_code_fences removes the ```html ... ``` wrapper a model sometimes
  puts around its output. It is applied to every cumulative stream value, so
  it also copes with a half-received opener or closer.
- sanitize_html keeps an allow-list of text/structure tags and attributes and
  drops everything else, including the body of script-like elements.
"""

import re
from html import escape
from html.parser import HTMLParser

# Opening fence, optionally with a language tag; "$" covers a partial opener mid-stream
_LEADING_FENCE_RE = re.compile(r"^\s*```[\w+-]*[ \t]*(?:\r?\n|$)")
_TRAILING_FENCE_RE = re.compile(r"\r?\n?[ \t]*```\s*$")
_PARTIAL_CLOSER_RE = re.compile(r"`{1,2}\s*$")

ALLOWED_TAGS = frozenset(
    {
        "a", "b", "blockquote", "br", "code", "div", "em", "h1", "h2", "h3",
        "h4", "h5", "h6", "hr", "i", "li", "mark", "ol", "p", "pre", "s",
        "small", "span", "strike", "strong", "sub", "sup", "table", "tbody",
        "td", "th", "thead", "tr", "u", "ul",
    }
)
ALLOWED_ATTRIBUTES = frozenset({"href", "target", "rel", "class", "style"})

# Elements removed together with everything inside them
DROP_CONTENT_TAGS = frozenset(
    {"script", "style", "iframe", "object", "embed", "noscript", "template", "svg", "math"}
)
VOID_TAGS = frozenset({"br", "hr"})

_UNSAFE_URL_RE = re.compile(r"^(javascript|vbscript|data):", re.IGNORECASE)
_UNSAFE_STYLE_RE = re.compile(r"expression\s*\(|javascript:|url\s*\(", re.IGNORECASE)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x20]+")


def strip_code_fences(text: str) -> str:
    """Strip leading/trailing markdown code fences from model output.

    Handles ```html ... ```, bare ``` ... ```, and fences that are only partly
    received. Fences in the middle of the content are left alone.
    """
    if not text:
        return ""

    opened = False
    match = _LEADING_FENCE_RE.match(text)
    if match:
        text = text[match.end():]
        opened = True

    text, closed = _TRAILING_FENCE_RE.subn("", text)
    if opened and not closed:
        # A closer that is still arriving ("`" or "``")
        text = _PARTIAL_CLOSER_RE.sub("", text)

    return text


def _safe_attribute(name: str, value: str | None) -> bool:
    if name not in ALLOWED_ATTRIBUTES or value is None:
        return False
    if name == "href" and _UNSAFE_URL_RE.match(_CONTROL_CHARS_RE.sub("", value)):
        return False
    if name == "style" and _UNSAFE_STYLE_RE.search(value):
        return False
    return True


class _AllowListParser(HTMLParser):
    """Rebuilds markup keeping only allowed tags and attributes."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self.open_tags: list[str] = []
        self.skip_depth = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in DROP_CONTENT_TAGS:
            self.skip_depth += 1
            return
        if self.skip_depth or tag not in ALLOWED_TAGS:
            return

        rendered = "".join(
            f' {name}="{escape(value, quote=True)}"'
            for name, value in attrs
            if _safe_attribute(name, value)
        )
        self.parts.append(f"<{tag}{rendered}>")
        if tag not in VOID_TAGS:
            self.open_tags.append(tag)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in DROP_CONTENT_TAGS:
            return
        self.handle_starttag(tag, attrs)
        if tag in self.open_tags and tag not in VOID_TAGS:
            self.handle_endtag(tag)

    def handle_endtag(self, tag: str) -> None:
        if tag in DROP_CONTENT_TAGS:
            self.skip_depth = max(0, self.skip_depth - 1)
            return
        if self.skip_depth or tag not in self.open_tags:
            return
        # Close anything left open inside this element
        while self.open_tags:
            current = self.open_tags.pop()
            self.parts.append(f"</{current}>")
            if current == tag:
                break

    def handle_data(self, data: str) -> None:
        if not self.skip_depth:
            self.parts.append(escape(data, quote=False))

    def result(self) -> str:
        self.close()
        while self.open_tags:
            self.parts.append(f"</{self.open_tags.pop()}>")
        return "".join(self.parts)


def sanitize_html(html: str) -> str:
    """
    Sanitize HTML before it is injected into a page.

    Applies to every raw-HTML render path: generated documents as well as
    rich-text fields.

    Args:
        html: Untrusted markup

    Returns:
        Markup containing only allow-listed tags and attributes
    """
    if not html:
        return ""

    parser = _AllowListParser()
    parser.feed(html)
    return parser.result()
