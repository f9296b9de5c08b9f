"""Derived statistics for generated content."""

import math
import re
from dataclasses import dataclass
from html import unescape

WORDS_PER_MINUTE = 200

_TAG_RE = re.compile(r"<[^>]*>")


@dataclass(frozen=True)
class ContentStats:
    """Word/character counts and estimated reading time."""

    words: int
    characters: int
    read_time_minutes: int

    def to_dict(self) -> dict:
        return {
            "words": self.words,
            "characters": self.characters,
            "read_time_minutes": self.read_time_minutes,
        }


def plain_text(content: str, tag_separator: str = " ") -> str:
    """Strip HTML tags and decode entities."""
    if not content:
        return ""
    return unescape(_TAG_RE.sub(tag_separator, content))


def count_words(content: str) -> int:
    return len(plain_text(content).split())


def content_stats(content: str) -> ContentStats:
    """
    Compute stats over the visible text of content.

    Tags are replaced by whitespace for word counting, so "<p>a</p><p>b</p>"
    counts two words. Characters are counted with tags removed outright,
    trimmed at both ends.

    Args:
        content: HTML or Markdown content

    Returns:
        ContentStats; empty content yields all zeros
    """
    words = count_words(content)
    return ContentStats(
        words=words,
        characters=len(plain_text(content, tag_separator="").strip()),
        read_time_minutes=math.ceil(words / WORDS_PER_MINUTE),
    )
