"""
Text normalization shared by massif name search and the geocode cache key
"""
import re
import unicodedata

_SEPARATORS = re.compile(r"[-_]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(value: str) -> str:
    """
    Lowercase, strip diacritics, turn hyphens/underscores into spaces,
    collapse whitespace and trim.

    >>> normalize_text("  Mont-Blanc ")
    'mont blanc'
    >>> normalize_text("Écrins")
    'ecrins'
    """
    decomposed = unicodedata.normalize("NFD", value.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    spaced = _SEPARATORS.sub(" ", stripped)
    return _WHITESPACE.sub(" ", spaced).strip()
