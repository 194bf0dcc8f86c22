"""Language detection for trader messages (English / Kiswahili)."""

from __future__ import annotations

import re
from enum import Enum


class Language(str, Enum):
    ENGLISH = "en"
    SWAHILI = "sw"


DEFAULT_LANGUAGE = Language.ENGLISH

SWAHILI_KEYWORDS = frozenset(
    {
        "nimeuza",
        "niliuza",
        "nilinunua",
        "nimenunua",
        "shilingi",
        "kilo",
        "leo",
        "jana",
        "nyanya",
        "vitunguu",
        "deni",
        "mkopo",
        "matumizi",
        "mteja",
        "kila",
        "bei",
    }
)

_WORD = re.compile(r"[^\W\d_]+")


def detect_language(text: str) -> Language:
    """Return ``sw`` if any Kiswahili keyword appears as a word, else ``en``."""
    if not text:
        return DEFAULT_LANGUAGE
    words = set(_WORD.findall(text.lower()))
    if words & SWAHILI_KEYWORDS:
        return Language.SWAHILI
    return DEFAULT_LANGUAGE


def coerce_language(value: str | Language | None, text: str = "") -> Language:
    """Parse a language hint; unknown or missing hints fall back to detection."""
    if isinstance(value, Language):
        return value
    if value:
        try:
            return Language(value.strip().lower())
        except ValueError:
            pass
    return detect_language(text)
