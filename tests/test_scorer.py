"""Tests for relevance scoring and field extraction."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from scanpilot.evaluation.extraction import extract_requirements, extract_salary
from scanpilot.evaluation.fallback import keyword_score, profile_tokens
from scanpilot.evaluation.openai_provider import OpenAIScoringProvider, build_prompt
from scanpilot.evaluation.scorer import RelevanceScorer, clean_response, extract_score_object
from scanpilot.models import CandidateProfile, JobPosting, PageContent


def _posting() -> JobPosting:
    return JobPosting(
        id="1",
        url="https://www.linkedin.com/jobs/view/1/",
        title="Software Engineer",
        company="Acme",
        location="Remote",
    )


def _page(text: str = "We build Python backend services.") -> PageContent:
    return PageContent(title="Software Engineer", url="https://www.linkedin.com/jobs/view/1/", full_text=text)


class _Provider:
    def __init__(self, reply=None, error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls = 0

    async def score(self, content, profile, criteria):
        self.calls += 1
        if self.error:
            raise self.error
        return self.reply


# ---- fallback tier ----


def test_profile_tokens_are_distinct_and_capped():
    text = " ".join(f"word{i}" for i in range(30)) + " word1 word2"
    tokens = profile_tokens(text)
    assert len(tokens) == 20
    assert len(set(tokens)) == 20
    assert tokens[0] == "word0"


def test_profile_tokens_skip_short_words():
    assert profile_tokens("go is ok but python wins") == ["but", "python", "wins"]


def test_keyword_score_base_and_bonus():
    result = keyword_score(
        "senior python engineer remote",
        "python engineer",
        "",
        ["engineer", "remote"],
    )
    # both tokens matched (1.0) plus one bonus for "engineer"; remote is not in the profile
    assert result.match_score == 1.0
    assert result.source == "fallback"
    assert "2/2" in result.match_reason
    assert "engineer" in result.match_reason


def test_keyword_score_partial_match_is_rounded():
    result = keyword_score("python developer", "python rust haskell", "", [])
    assert result.match_score == 0.33


def test_keyword_score_empty_profile_is_zero():
    result = keyword_score("anything at all", "", "", ["remote"])
    assert result.match_score == 0.0


def test_keyword_score_is_capped_at_one():
    result = keyword_score(
        "software engineer remote nyc",
        "software engineer remote nyc",
        "",
        ["engineer", "software", "remote", "nyc"],
    )
    assert result.match_score == 1.0


# ---- response handling ----


def test_clean_response_strips_control_chars_and_unescapes():
    raw = '\x00{"matchScore": 0.5,\\n "matchReason": "ok"}\x07'
    assert clean_response(raw) == '{"matchScore": 0.5,\n "matchReason": "ok"}'


def test_extract_score_object_skips_leading_prose_and_other_objects():
    text = 'Sure! {"note": 1} Here you go: {"matchScore": 0.7, "matchReason": "fit"} Thanks.'
    assert extract_score_object(text) == {"matchScore": 0.7, "matchReason": "fit"}


def test_extract_score_object_returns_none_without_json():
    assert extract_score_object("I cannot answer that.") is None


def test_llm_score_is_used_and_clamped():
    provider = _Provider('{"matchScore": 1.7, "matchReason": "Great fit", "salary": "null"}')
    scorer = RelevanceScorer(provider)
    result = asyncio.run(scorer.score(_posting(), _page(), CandidateProfile(profile="python")))
    assert result.source == "llm"
    assert result.match_score == 1.0
    assert result.match_reason == "Great fit"
    assert result.salary is None


def test_llm_extracted_fields_are_returned():
    reply = (
        '{"title": "Backend Engineer", "company": "Acme Corp", "location": "NYC",'
        ' "description": "Requirements:\\n- Python\\n- SQL\\nPay $120,000 - $150,000 per year",'
        ' "matchScore": 0.8, "matchReason": "Strong Python"}'
    )
    scorer = RelevanceScorer(_Provider(reply))
    result = asyncio.run(scorer.score(_posting(), _page(), CandidateProfile(profile="python")))
    assert result.title == "Backend Engineer"
    assert result.company == "Acme Corp"
    assert "Python" in result.requirements
    assert result.salary.startswith("$120,000")


def test_unparsable_reply_falls_back_to_keywords():
    provider = _Provider("Sorry, I can't help with that.")
    scorer = RelevanceScorer(provider, bonus_terms=["engineer"])
    result = asyncio.run(
        scorer.score(_posting(), _page(), CandidateProfile(profile="python engineer"))
    )
    assert provider.calls == 1
    assert result.source == "fallback"
    assert 0.0 <= result.match_score <= 1.0


def test_provider_error_falls_back_to_keywords():
    scorer = RelevanceScorer(_Provider(error=RuntimeError("rate limited")))
    result = asyncio.run(scorer.score(_posting(), _page(), CandidateProfile(profile="python")))
    assert result.source == "fallback"
    assert result.match_score == 1.0


def test_no_provider_uses_fallback_with_truncated_description():
    scorer = RelevanceScorer(None, fallback_chars=10)
    result = asyncio.run(
        scorer.score(_posting(), _page("x" * 50), CandidateProfile(profile="software"))
    )
    assert result.source == "fallback"
    assert result.description == "x" * 10
    # title carries "Software"
    assert result.match_score == 1.0


# ---- extraction ----


def test_extract_requirements_from_bullets_and_sections():
    text = "About us\nRequirements:\n• 3+ years Python\n• Docker\nBenefits"
    reqs = extract_requirements(text)
    assert "3+ years Python" in reqs
    assert "Docker" in reqs
    assert len(reqs) == len(set(reqs))


def test_extract_salary_patterns():
    assert extract_salary("Pay: $95,000 - $120,000 annually") == "$95,000 - $120,000 annually"
    assert extract_salary("Salary range: 90 - 110k") == "Salary range: 90 - 110k"
    assert extract_salary("Competitive pay") is None
    assert extract_salary(None) is None


# ---- openai provider ----


def test_build_prompt_truncates_content():
    prompt = build_prompt("a" * 100, "profile text", "", max_chars=10)
    assert "a" * 10 in prompt
    assert "a" * 11 not in prompt
    assert "Additional Criteria:\nNone" in prompt


def test_openai_provider_returns_reply_text():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='{"matchScore": 0.4}'))]
        )
    )
    provider = OpenAIScoringProvider("sk-test", "gpt-4o", client=client)
    text = asyncio.run(provider.score("page", "profile", "criteria"))
    assert text == '{"matchScore": 0.4}'
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o"
    assert kwargs["messages"][0]["role"] == "system"
