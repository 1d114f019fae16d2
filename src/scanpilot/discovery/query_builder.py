"""Pure-function search target resolution and LinkedIn URL building."""

from __future__ import annotations

from urllib.parse import quote, urlencode

from scanpilot.models import CandidateProfile
from scanpilot.settings import AppSettings

_BASE = "https://www.linkedin.com/jobs/search/"

# ---- lookup tables ----

_GEO_IDS: dict[str, str] = {
    "asia": "102393603",
    "europe": "100506914",
    "northamerica": "102221843",
    "southamerica": "104514572",
    "australia": "101452733",
    "africa": "103537801",
}

_DATE_SECONDS: dict[str, str] = {
    "past month": "r2592000",
    "past week": "r604800",
    "past 24 hours": "r86400",
}


def build_search_url(
    keywords: str,
    location: str = "",
    *,
    date_posted: str = "",
    sort_order: str = "recent",
) -> str:
    """Build one LinkedIn job search URL."""
    params: dict[str, str] = {"keywords": keywords.strip()}

    if location.strip():
        params["location"] = location.strip()
        geo_id = _GEO_IDS.get(location.strip().lower().replace(" ", ""), "")
        if geo_id:
            params["geoId"] = geo_id

    dp_key = date_posted.strip().lower()
    if dp_key in _DATE_SECONDS:
        params["f_TPR"] = _DATE_SECONDS[dp_key]

    if sort_order == "recent":
        params["sortBy"] = "DD"
    elif sort_order in ("relevant", "relevance"):
        params["sortBy"] = "R"

    return f"{_BASE}?{urlencode(params, quote_via=quote)}"


def resolve_search_targets(
    settings: AppSettings,
    plan: CandidateProfile,
    ad_hoc_url: str | None = None,
) -> list[str]:
    """Return the ordered, de-duplicated list of search URLs for one scan.

    An ad-hoc URL wins outright.  Otherwise saved plan URLs, then settings
    URLs, then URLs built from plan search terms or keyword × location pairs.
    """
    if ad_hoc_url:
        return [ad_hoc_url.strip()]

    targets: list[str] = [*plan.search_urls, *settings.search_urls]
    if not targets:
        locations = settings.locations or [""]
        terms = list(plan.search_terms) or settings.keywords
        targets = [
            build_search_url(
                term,
                loc,
                date_posted=settings.date_posted,
                sort_order=settings.sort_order,
            )
            for term in terms
            for loc in locations
        ]
    return list(dict.fromkeys(t.strip() for t in targets if t and t.strip()))
