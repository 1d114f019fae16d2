"""Scrape listing records from LinkedIn search result pages."""

from __future__ import annotations

import logging
import math

from scanpilot.auth.session_manager import SessionManager
from scanpilot.browser.base import BrowserAdapter
from scanpilot.browser.playwright_adapter import PlaywrightAdapter
from scanpilot.exceptions import AuthenticationCheckpoint, SearchExtractionFailure
from scanpilot.models import RawListing

logger = logging.getLogger(__name__)

_RESULTS_PER_PAGE = 25

_RESULTS_HEADER_SELECTOR = ".jobs-search-results-list__header, .jobs-search-results-list"
_HEADER_TIMEOUT_MS = 15_000

_EXTRACT_CARDS_JS = """
() => Array.from(document.querySelectorAll('.job-card-list, li[data-occludable-job-id]')).map(el => {
    const titleEl = el.querySelector('a.job-card-list__title--link, a.job-card-container__link');
    const companyEl = el.querySelector('.artdeco-entity-lockup__subtitle span');
    const locationEl = el.querySelector('.job-card-container__metadata-wrapper li');
    const timeEl = el.querySelector('time');
    const clean = (node) => node ? node.innerText.replace(/\\s+/g, ' ').trim() : null;
    return {
        title: clean(titleEl),
        company: clean(companyEl),
        location: clean(locationEl),
        posted: timeEl ? (timeEl.getAttribute('datetime') || clean(timeEl)) : null,
        url: titleEl && titleEl.href ? titleEl.href : null,
    };
})
"""


def compute_page_count(total_text: str, max_pages: int) -> int:
    """Derive the number of result pages from the total-results text.

    LinkedIn shows e.g. ``"1,234 results"`` or just ``"25"``.
    """
    stripped = total_text.strip().replace(",", "")
    parts = stripped.split()
    try:
        n = int(parts[0]) if parts else int(stripped)
    except ValueError:
        return 1
    return max(1, min(math.ceil(n / _RESULTS_PER_PAGE), max_pages))


def page_url(base_url: str, page_idx: int) -> str:
    if page_idx == 0:
        return base_url
    sep = "&" if "?" in base_url else "?"
    return f"{base_url}{sep}start={page_idx * _RESULTS_PER_PAGE}"


def to_listings(cards: list[dict]) -> list[RawListing]:
    """Convert extracted card dicts, dropping cards without a link."""
    listings: list[RawListing] = []
    for card in cards:
        url = card.get("url")
        if not url:
            continue
        listings.append(
            RawListing(
                url=url.split("?")[0],
                title=card.get("title"),
                company=card.get("company"),
                location=card.get("location"),
                posted=card.get("posted"),
            )
        )
    return listings


class PlaywrightSearchProvider:
    """Logged-in browser search over one or more result pages per URL."""

    def __init__(
        self,
        email: str,
        password: str,
        *,
        state_dir: str = ".state",
        headless: bool = True,
        slow_mo: int = 0,
        max_pages: int = 1,
        adapter: BrowserAdapter | None = None,
    ) -> None:
        self._adapter = adapter or PlaywrightAdapter()
        self._session_mgr = SessionManager(self._adapter, email, password, state_dir)
        self._headless = headless
        self._slow_mo = slow_mo
        self._max_pages = max_pages

    async def start(self) -> None:
        await self._adapter.launch(
            headless=self._headless,
            slow_mo=self._slow_mo,
            storage_state_path=self._session_mgr.storage_state_path() or None,
        )
        await self._session_mgr.ensure_authenticated()

    async def close(self) -> None:
        await self._adapter.close()

    async def search(self, url: str) -> list[RawListing]:
        collected: list[RawListing] = []
        pages = 1
        page_idx = 0
        while page_idx < pages:
            await self._adapter.navigate(page_url(url, page_idx))
            if await self._adapter.is_checkpoint():
                raise AuthenticationCheckpoint(
                    f"Verification wall while loading {await self._adapter.page_url()}."
                )
            header = await self._adapter.query(_RESULTS_HEADER_SELECTOR, timeout=_HEADER_TIMEOUT_MS)
            if header is None:
                title = await self._adapter.page_title()
                raise SearchExtractionFailure(
                    f"No job list on page {title!r} — the layout may have changed."
                )
            if page_idx == 0 and self._max_pages > 1:
                total_text = await self._adapter.evaluate(
                    "() => (document.querySelector('.jobs-search-results-list__subtitle')"
                    " || {innerText: ''}).innerText"
                )
                pages = compute_page_count(total_text or "", self._max_pages)
                logger.info("Found %s — scanning %d page(s).", (total_text or "?").strip(), pages)

            page_listings = to_listings(await self._adapter.evaluate(_EXTRACT_CARDS_JS) or [])
            logger.info("Found %d listings on page %d.", len(page_listings), page_idx + 1)
            if not page_listings:
                break
            collected.extend(page_listings)
            page_idx += 1

        # Deduplicate by URL while preserving order
        seen: set[str] = set()
        unique: list[RawListing] = []
        for listing in collected:
            if listing.url not in seen:
                seen.add(listing.url)
                unique.append(listing)
        logger.info("Total unique listings collected: %d", len(unique))
        return unique
