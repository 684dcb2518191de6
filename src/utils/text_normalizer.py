"""Text normalization utilities for artist and venue names.

Names reach the engine from three places that never agree on spelling:
the content classifier ("Boygenius"), the user's own concert records
("boygenius") and the external setlist catalog ("boygenius").  Everything
that compares names goes through :func:`normalize_name` first so casing,
accents ("Olympia" vs "Olympía"), punctuation and stray whitespace never
decide a match.
"""

import re
import unicodedata

from rapidfuzz.distance import Levenshtein

_PUNCTUATION_RE = re.compile(r"[^\w\s]", re.UNICODE)
_WHITESPACE_RE = re.compile(r"\s+")


def strip_diacritics(text: str) -> str:
    """Remove combining accent marks ("Mötley Crüe" -> "Motley Crue")."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_name(name: str | None) -> str:
    """Normalize an artist or venue name for comparison and indexing.

    Casefolds, strips diacritics, turns "&" into "and", drops punctuation and
    collapses whitespace.  ``None`` and blank input normalize to ``""``.

    Args:
        name: Raw name string.

    Returns:
        Normalized comparison key.
    """
    if not name:
        return ""

    normalized = strip_diacritics(name).casefold()
    normalized = normalized.replace("&", " and ")
    normalized = _PUNCTUATION_RE.sub(" ", normalized)
    normalized = _WHITESPACE_RE.sub(" ", normalized)
    return normalized.strip()


def names_equal(a: str | None, b: str | None) -> bool:
    """Return ``True`` when both names are non-empty and normalize identically."""
    norm_a = normalize_name(a)
    return bool(norm_a) and norm_a == normalize_name(b)


def name_similarity(a: str | None, b: str | None) -> float:
    """Similarity of two names in [0.0, 1.0] by normalized edit distance.

    Both sides are normalized first, so ``"Boygenius"`` and ``"boygenius"``
    score 1.0.  An empty side scores 0.0.
    """
    norm_a = normalize_name(a)
    norm_b = normalize_name(b)
    if not norm_a or not norm_b:
        return 0.0
    return Levenshtein.normalized_similarity(norm_a, norm_b)
