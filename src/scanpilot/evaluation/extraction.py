"""Pull requirement lines and salary text out of a free-form description."""

from __future__ import annotations

import re

_BULLET = re.compile(r"[•\-\*]\s*([^\n•\-\*]+)")

_SECTION_HEADINGS = (
    "Requirements",
    "Qualifications",
    "Skills",
    "Experience",
    "What You'll Need",
    "What You Need",
    "Must Have",
)
_SECTION = re.compile(
    r"(?:{h})[:\s]([\s\S]*?)(?=(?:{h})[:\s]|$)".format(
        h="|".join(re.escape(s) for s in _SECTION_HEADINGS)
    ),
    re.IGNORECASE,
)

_SALARY_PATTERNS = (
    re.compile(
        r"\$\s*\d{1,3}(?:,\d{3})*(?:\s*-\s*\$\s*\d{1,3}(?:,\d{3})*)?"
        r"(?:\s*(?:k|thousand|million|per year|/year|annual|annually|p\.a\.|pa)\b)?",
        re.IGNORECASE,
    ),
    re.compile(
        r"(?:salary|compensation|pay)(?:\s*range)?(?:\s*:)?\s*\d{1,3}(?:,\d{3})*"
        r"(?:\s*-\s*\d{1,3}(?:,\d{3})*)?\s*(?:k|thousand|million)\b",
        re.IGNORECASE,
    ),
)


def extract_requirements(description: str | None) -> list[str]:
    """Bullet points and section lines, de-duplicated in first-seen order."""
    if not description:
        return []
    found = [m.group(1).strip() for m in _BULLET.finditer(description)]
    for match in _SECTION.finditer(description):
        found.extend(line.strip() for line in match.group(1).splitlines())
    return list(dict.fromkeys(line for line in found if line))


def extract_salary(description: str | None) -> str | None:
    if not description:
        return None
    for pattern in _SALARY_PATTERNS:
        match = pattern.search(description)
        if match:
            return match.group(0).strip()
    return None
