"""Protocol definitions for the discovery collaborators."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from scanpilot.models import PageContent, RawListing


@runtime_checkable
class SearchProvider(Protocol):
    """Turns a search results URL into raw listing records.

    ``search`` raises ``AuthenticationCheckpoint`` when the provider cannot
    get past a login/verification wall and ``SearchExtractionFailure`` when
    the results page does not have the expected shape.
    """

    async def start(self) -> None:
        """Acquire whatever the provider needs (browser, login)."""
        ...

    async def close(self) -> None:
        ...

    async def search(self, url: str) -> list[RawListing]:
        ...


@runtime_checkable
class PageFetcher(Protocol):
    """Retrieves the full text of one posting page.

    Raises ``FetchError``/``PageParseError`` or ``asyncio.TimeoutError``.
    """

    async def start(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def fetch(self, url: str) -> PageContent:
        ...
