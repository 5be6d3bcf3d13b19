"""Derived fields computed from note content.

All functions are pure. Markup is treated as opaque: the only assumption is
that removing everything between ``<`` and ``>`` leaves readable text.
"""

import math
import re
from typing import NamedTuple

WORDS_PER_MINUTE = 200

_TAG_RE = re.compile(r"<[^>]*>")
_NBSP_RE = re.compile(r"&nbsp;")
_ENTITY_RE = re.compile(r"&[a-zA-Z0-9#]+;")


class DerivedFields(NamedTuple):
    """Values recomputed whenever note content changes."""

    plain_text: str
    word_count: int
    reading_time: int
    character_count: int


def extract_plain_text(html: str) -> str:
    """Strip markup, turn ``&nbsp;`` into a space and drop other entities."""
    text = _TAG_RE.sub("", html or "")
    text = _NBSP_RE.sub(" ", text)
    text = _ENTITY_RE.sub("", text)
    return text.strip()


def calculate_word_count(text: str) -> int:
    """Count whitespace-delimited tokens; blank text has zero words."""
    return len(text.split())


def calculate_reading_time(word_count: int) -> int:
    """Reading time in minutes at 200 words per minute, never below 1."""
    return max(1, math.ceil(word_count / WORDS_PER_MINUTE))


def compute_derived_fields(content: str) -> DerivedFields:
    """Compute every derived field for a piece of content."""
    content = content or ""
    plain_text = extract_plain_text(content)
    word_count = calculate_word_count(plain_text)
    return DerivedFields(
        plain_text=plain_text,
        word_count=word_count,
        reading_time=calculate_reading_time(word_count),
        character_count=len(content),
    )
