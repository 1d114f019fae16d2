"""OpenAI-backed scoring provider."""

from __future__ import annotations

import logging

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You are a job analysis system that compares job postings with candidate "
    "profiles and answers with JSON only."
)

_PROMPT = """\
Analyze the job page content and respond with ONLY a JSON object, no other text.

Candidate Profile:
{profile}

Additional Criteria:
{criteria}

Job Page Content:
{content}

Extract job details and provide a match score from 0.0 to 1.0.

Respond with ONLY this JSON format (no additional text):
{{
  "title": "extracted job title",
  "company": "extracted company name",
  "location": "extracted location",
  "description": "extracted job description",
  "salary": "extracted salary or null",
  "matchScore": 0.8,
  "matchReason": "detailed explanation of match"
}}"""


def build_prompt(content: str, profile: str, criteria: str, max_chars: int = 8000) -> str:
    return _PROMPT.format(
        profile=profile,
        criteria=criteria or "None",
        content=content[:max_chars],
    )


class OpenAIScoringProvider:
    """Sends one chat completion per posting and returns the raw reply text."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        *,
        temperature: float = 0.1,
        max_tokens: int = 1000,
        content_chars: int = 8000,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._client = client or AsyncOpenAI(api_key=api_key)
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._content_chars = content_chars

    async def score(self, content: str, profile: str, criteria: str) -> str:
        prompt = build_prompt(content, profile, criteria, self._content_chars)
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        text = response.choices[0].message.content or ""
        logger.debug("Scoring reply (%d chars) from %s.", len(text), self._model)
        return text
