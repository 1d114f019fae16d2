"""Anti-detection and bandwidth helpers for Playwright pages."""

from __future__ import annotations

from typing import Any

_BLOCKED_RESOURCE_TYPES = frozenset({"image", "stylesheet", "font", "media"})
_BLOCKED_URL_FRAGMENTS = (
    "google-analytics",
    "googletagmanager",
    "doubleclick",
    "facebook.com",
    "/analytics",
)


async def apply_stealth(page: Any) -> None:
    """Mask the most common automation fingerprints."""
    await page.add_init_script("""
        Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
        window.chrome = { runtime: {} };
        Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
        Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
    """)


async def block_heavy_resources(page: Any) -> None:
    """Abort images, fonts, media and tracker requests; search pages only need the DOM."""

    async def _route(route: Any) -> None:
        request = route.request
        if request.resource_type in _BLOCKED_RESOURCE_TYPES or any(
            frag in request.url for frag in _BLOCKED_URL_FRAGMENTS
        ):
            await route.abort()
        else:
            await route.continue_()

    await page.route("**/*", _route)
