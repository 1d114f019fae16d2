"""Two-tier relevance scoring: LLM judgment with a keyword fallback."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, Protocol, runtime_checkable

from scanpilot.evaluation.extraction import extract_requirements, extract_salary
from scanpilot.evaluation.fallback import keyword_score
from scanpilot.models import CandidateProfile, JobPosting, PageContent, ScoreResult

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
_DECODER = json.JSONDecoder(strict=False)


@runtime_checkable
class ScoringProvider(Protocol):
    """Anything that turns posting content plus a profile into raw LLM text."""

    async def score(self, content: str, profile: str, criteria: str) -> str:
        ...


def clean_response(text: str) -> str:
    """Strip control characters and unescape literal ``\\n``/``\\t`` runs."""
    text = _CONTROL_CHARS.sub("", text or "")
    return text.replace("\\n", "\n").replace("\\t", "\t").strip()


def extract_score_object(text: str) -> dict[str, Any] | None:
    """Return the first brace-delimited JSON object that has ``matchScore``."""
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = _DECODER.raw_decode(text, start)
        except ValueError:
            obj = None
        if isinstance(obj, dict) and "matchScore" in obj:
            return obj
        start = text.find("{", start + 1)
    return None


def _clamp(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if score != score:  # NaN
        return 0.0
    return max(0.0, min(1.0, score))


def _text(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    if not value or value.lower() in ("null", "none", "n/a"):
        return None
    return value


class RelevanceScorer:
    """Scores postings against a profile and never raises.

    Provider errors, missing JSON and unparsable JSON all degrade to the
    keyword fallback, so every posting leaves the deep scan with a score.
    """

    def __init__(
        self,
        provider: ScoringProvider | None = None,
        *,
        bonus_terms: Iterable[str] = (),
        fallback_chars: int = 2000,
    ) -> None:
        self._provider = provider
        self._bonus_terms = tuple(bonus_terms)
        self._fallback_chars = fallback_chars

    async def score(
        self,
        posting: JobPosting,
        page: PageContent,
        profile: CandidateProfile,
    ) -> ScoreResult:
        if self._provider is not None:
            try:
                raw = await self._provider.score(
                    page.full_text, profile.profile, profile.scan_prompt
                )
            except Exception as exc:
                logger.warning(
                    "Scoring provider failed for %s: %s — using keyword fallback.",
                    posting.id,
                    exc,
                )
            else:
                result = self._parse(raw, posting)
                if result is not None:
                    return result
                logger.warning(
                    "No usable JSON in scoring response for %s — using keyword fallback.",
                    posting.id,
                )
        return self.fallback(posting, page, profile)

    def fallback(
        self,
        posting: JobPosting,
        page: PageContent,
        profile: CandidateProfile,
    ) -> ScoreResult:
        description = (page.full_text or "")[: self._fallback_chars]
        job_text = " ".join(
            part for part in (posting.title, posting.company, posting.location, description) if part
        )
        result = keyword_score(
            job_text, profile.profile, profile.scan_prompt, self._bonus_terms
        )
        result.description = description or None
        result.requirements = extract_requirements(description)
        result.salary = extract_salary(description)
        return result

    def _parse(self, raw: str, posting: JobPosting) -> ScoreResult | None:
        obj = extract_score_object(clean_response(raw))
        if obj is None:
            return None
        description = _text(obj.get("description"))
        requirements = obj.get("requirements")
        if not isinstance(requirements, list):
            requirements = extract_requirements(description)
        result = ScoreResult(
            match_score=_clamp(obj.get("matchScore")),
            match_reason=_text(obj.get("matchReason")) or "No reason provided",
            source="llm",
            title=_text(obj.get("title")),
            company=_text(obj.get("company")),
            location=_text(obj.get("location")),
            description=description,
            salary=_text(obj.get("salary")) or extract_salary(description),
            requirements=[str(r).strip() for r in requirements if str(r).strip()],
        )
        logger.debug("LLM score for %s: %.2f", posting.id, result.match_score)
        return result
