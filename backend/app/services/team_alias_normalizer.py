"""
backend/app/services/team_alias_normalizer.py

Purpose:
    Normalize team name strings coming from odds feeds, stat providers and
    API callers into comparable keys: accents, punctuation, German-style
    transliterations and legal/club suffixes ("FC", "AFC", "CF", ...).

Dependencies:
    - re
    - unicodedata
"""

from __future__ import annotations

import re
import unicodedata

_PUNCT_RE = re.compile(r"[^a-z0-9\s]")
_SPACE_RE = re.compile(r"\s+")
_TRANSLIT_MAP = {
    "ae": "a",
    "oe": "o",
    "ue": "u",
}
# Club-form tokens that carry no identity ("FC Barcelona" == "Barcelona")
LEGAL_SUFFIX_TOKENS = frozenset({
    "fc", "afc", "cf", "sc", "ac", "as", "ssc", "sv", "vfb", "vfl", "tsg",
    "bc", "bk", "fk", "sk", "cd", "rcd", "ud", "club", "calcio", "1",
})


def normalize_team_alias(raw: str) -> str:
    """
    Normalize alias text into an ASCII-safe key.

    Steps:
        1. lowercase + trim
        2. NFKD accent removal
        3. punctuation cleanup
        4. whitespace collapse
        5. compatibility transliteration (e.g. muenchen -> munchen)
    """
    text = str(raw or "").strip().lower()
    if not text:
        return ""

    text = unicodedata.normalize("NFKD", text)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.replace("&", " and ")
    text = _PUNCT_RE.sub(" ", text)
    text = _SPACE_RE.sub(" ", text).strip()
    if not text:
        return ""

    tokens: list[str] = []
    for token in text.split(" "):
        normalized = token
        for src, dst in _TRANSLIT_MAP.items():
            normalized = normalized.replace(src, dst)
        if normalized:
            tokens.append(normalized)
    return " ".join(tokens)


def strip_legal_suffixes(normalized: str) -> str:
    """Drop club-form tokens from an already normalized key.

    Returns the input unchanged when stripping would leave nothing
    (e.g. a team literally called "AC").
    """
    tokens = [t for t in normalized.split(" ") if t and t not in LEGAL_SUFFIX_TOKENS]
    return " ".join(tokens) if tokens else normalized


def team_key(raw: str) -> str:
    """Normalized, suffix-free comparison key for a team name."""
    return strip_legal_suffixes(normalize_team_alias(raw))
