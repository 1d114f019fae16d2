"""HTTP posting fetcher built on aiohttp and BeautifulSoup."""

from __future__ import annotations

import logging
import re
import time

import aiohttp
from bs4 import BeautifulSoup

from scanpilot.exceptions import FetchError, PageParseError
from scanpilot.models import PageContent

logger = logging.getLogger(__name__)

_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}

_MIN_USEFUL_CHARS = 500
_JOB_WORDS = re.compile(
    r"job|position|role|responsibilities|requirements|qualifications|description",
    re.IGNORECASE,
)


def html_to_text(html: str) -> tuple[str, str]:
    """Return ``(title, body_text)`` with scripts and styles removed."""
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    body = soup.body or soup
    text = re.sub(r"\s+", " ", body.get_text(separator=" ")).strip()
    return title, text


class HttpPageFetcher:
    """Fetches posting pages over plain HTTP (no browser)."""

    def __init__(self, timeout_seconds: float = 30.0) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(headers=_HEADERS, timeout=self._timeout)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch(self, url: str) -> PageContent:
        await self.start()
        assert self._session is not None
        started = time.monotonic()
        try:
            async with self._session.get(url) as resp:
                if resp.status >= 400:
                    raise FetchError(f"HTTP {resp.status}: {resp.reason}")
                html = await resp.text()
        except aiohttp.ClientError as exc:
            raise FetchError(f"Request failed: {exc}") from exc
        logger.debug("Fetched %s in %.0f ms.", url, (time.monotonic() - started) * 1000)

        title, text = html_to_text(html)
        if not text:
            raise PageParseError("Page has no extractable text.")
        if len(text) < _MIN_USEFUL_CHARS:
            logger.warning(
                "Very little content extracted from %s (%d chars) — page may need JS rendering.",
                url,
                len(text),
            )
        if not _JOB_WORDS.search(text):
            logger.warning("No job-related wording on %s — possibly blocked or redirected.", url)
        return PageContent(title=title, url=url, full_text=text)
