"""
backend/app/utils/team_matching.py

Purpose:
    Deterministic team-name comparison helpers shared by the odds resolver
    (event lookup) and the team resolver (candidate selection).

Notes:
    - Provider IDs always take precedence over fuzzy names.
    - Fuzzy matching is a fallback only and can produce edge-case false
      positives; callers keep the confidence threshold explicit.
"""

from __future__ import annotations

from difflib import SequenceMatcher

from app.services.team_alias_normalizer import team_key


def _tokens(name: str) -> set[str]:
    return {token for token in team_key(name).split() if len(token) >= 3}


def names_contain(name_a: str, name_b: str) -> bool:
    """True when either normalized name contains the other."""
    key_a = team_key(name_a)
    key_b = team_key(name_b)
    if not key_a or not key_b:
        return False
    return key_a in key_b or key_b in key_a


def teams_match(name_a: str, name_b: str) -> bool:
    """Return True when both names likely refer to the same team."""
    if names_contain(name_a, name_b):
        return True

    tokens_a = _tokens(name_a)
    tokens_b = _tokens(name_b)
    if not tokens_a or not tokens_b:
        return False

    if tokens_a & tokens_b:
        return True

    for token_a in tokens_a:
        for token_b in tokens_b:
            if len(token_a) >= 4 and len(token_b) >= 4:
                if token_a.startswith(token_b[:4]) or token_b.startswith(token_a[:4]):
                    return True
    return False


def similarity(name_a: str, name_b: str) -> float:
    """0..1 similarity ratio of the normalized keys."""
    key_a = team_key(name_a)
    key_b = team_key(name_b)
    if not key_a and not key_b:
        return 1.0
    return SequenceMatcher(None, key_a, key_b).ratio()


def best_match(name: str, candidates: list[str], threshold: float = 0.7) -> str | None:
    """Most similar candidate at or above ``threshold``; first one wins ties."""
    best: str | None = None
    best_score = 0.0
    for candidate in candidates:
        score = similarity(name, candidate)
        if score > best_score:
            best, best_score = candidate, score
    return best if best is not None and best_score >= threshold else None
