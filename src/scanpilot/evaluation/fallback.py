"""Deterministic keyword scorer used whenever the LLM tier is unavailable."""

from __future__ import annotations

import logging
import re
from typing import Iterable

from scanpilot.models import ScoreResult

logger = logging.getLogger(__name__)

_MAX_TOKENS = 20
_BONUS_PER_TERM = 0.1
_WORD = re.compile(r"\b\w{3,}\b")


def profile_tokens(profile: str, criteria: str = "") -> list[str]:
    """Distinct lowercase words of 3+ chars, first 20 in order of appearance."""
    words = _WORD.findall(f"{profile or ''} {criteria or ''}".lower())
    return list(dict.fromkeys(words))[:_MAX_TOKENS]


def keyword_score(
    posting_text: str,
    profile: str,
    criteria: str = "",
    bonus_terms: Iterable[str] = (),
) -> ScoreResult:
    """Score *posting_text* by profile keyword overlap plus bonus terms.

    Pure and total: empty inputs give a score of ``0.0`` rather than an error.
    """
    job_text = (posting_text or "").lower()
    profile_text = f"{profile or ''} {criteria or ''}".lower()

    tokens = profile_tokens(profile, criteria)
    matched = [t for t in tokens if t in job_text]
    base = len(matched) / len(tokens) if tokens else 0.0

    bonus_hits = [
        term
        for term in (t.lower() for t in bonus_terms)
        if term and term in job_text and term in profile_text
    ]
    bonus = _BONUS_PER_TERM * len(bonus_hits)
    score = round(min(1.0, base + bonus), 2)

    reason = (
        f"Keyword matching: {len(matched)}/{len(tokens)} keywords matched. "
        f"Matched terms: {', '.join(matched) if matched else 'none'}. "
        f"Bonus score: +{bonus:.1f} for important terms"
        f"{' (' + ', '.join(bonus_hits) + ')' if bonus_hits else ''}."
    )
    logger.debug("Fallback match score: %.2f", score)
    return ScoreResult(match_score=score, match_reason=reason, source="fallback")
