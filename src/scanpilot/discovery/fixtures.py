"""Fixture-backed search provider and page fetcher for offline runs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from scanpilot.exceptions import AuthenticationCheckpoint, FetchError, SearchExtractionFailure
from scanpilot.models import PageContent, RawListing

logger = logging.getLogger(__name__)


def load_fixtures(path: str | Path) -> dict[str, Any]:
    """Read ``searches`` and ``pages`` mappings from a YAML fixtures file.

    ``searches`` maps a search URL to a list of listing mappings, or to the
    strings ``checkpoint``/``broken`` to simulate provider failures.
    ``pages`` maps a posting URL to its page text.
    """
    path = Path(path)
    if not path.exists():
        logger.warning("Fixtures file %s not found — serving empty results.", path)
        return {"searches": {}, "pages": {}}
    with open(path) as fh:
        data = yaml.safe_load(fh) or {}
    return {"searches": data.get("searches") or {}, "pages": data.get("pages") or {}}


class FixtureSearchProvider:
    def __init__(self, searches: dict[str, Any]) -> None:
        self._searches = searches

    async def start(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def search(self, url: str) -> list[RawListing]:
        entry = self._searches.get(url, [])
        if entry == "checkpoint":
            raise AuthenticationCheckpoint("Fixture search requested a verification checkpoint.")
        if entry == "broken":
            raise SearchExtractionFailure(f"Fixture results page for {url} has no job list.")
        return [
            RawListing(
                url=item["url"],
                title=item.get("title"),
                company=item.get("company"),
                location=item.get("location"),
                posted=item.get("posted"),
            )
            for item in entry
        ]


class FixturePageFetcher:
    def __init__(self, pages: dict[str, str]) -> None:
        self._pages = pages

    async def start(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def fetch(self, url: str) -> PageContent:
        if url not in self._pages:
            raise FetchError(f"No fixture page for {url}")
        return PageContent(title="", url=url, full_text=str(self._pages[url]))
