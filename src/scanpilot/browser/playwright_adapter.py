"""Playwright-backed implementation of BrowserAdapter."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from scanpilot.browser.stealth import apply_stealth, block_heavy_resources
from scanpilot.exceptions import BrowserLaunchError

logger = logging.getLogger(__name__)

_CHECKPOINT_FRAGMENTS: frozenset[str] = frozenset(
    {"/checkpoint", "security-verification", "/authwall", "/uas/login"}
)


class PlaywrightAdapter:
    """Async browser driver built on Playwright Chromium."""

    def __init__(self, block_resources: bool = True) -> None:
        self._pw: Any = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._block_resources = block_resources

    @property
    def page(self) -> Page:
        assert self._page is not None, "Browser not launched — call launch() first."
        return self._page

    # --- lifecycle ---

    async def launch(
        self,
        headless: bool = True,
        slow_mo: int = 0,
        storage_state_path: str | None = None,
    ) -> None:
        try:
            self._pw = await async_playwright().start()
            self._browser = await self._pw.chromium.launch(
                headless=headless,
                slow_mo=slow_mo,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--no-sandbox",
                    "--disable-dev-shm-usage",
                ],
            )
            ctx_kwargs: dict[str, Any] = {
                "viewport": {"width": 1280, "height": 900},
                "locale": "en-US",
                "user_agent": (
                    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
                    "AppleWebKit/537.36 (KHTML, like Gecko) "
                    "Chrome/120.0.0.0 Safari/537.36"
                ),
            }
            if storage_state_path and Path(storage_state_path).exists():
                ctx_kwargs["storage_state"] = storage_state_path

            self._context = await self._browser.new_context(**ctx_kwargs)
            self._page = await self._context.new_page()
            await apply_stealth(self._page)
            if self._block_resources:
                await block_heavy_resources(self._page)
            logger.info("Browser launched (headless=%s).", headless)
        except Exception as exc:
            await self.close()
            raise BrowserLaunchError(f"Failed to start Playwright Chromium: {exc}") from exc

    async def close(self) -> None:
        if self._context:
            await self._context.close()
            self._context = None
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._pw:
            await self._pw.stop()
            self._pw = None
        self._page = None
        logger.info("Browser closed.")

    # --- navigation ---

    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        await self.page.goto(url, wait_until=wait_until)

    async def wait_for_navigation(self, timeout: float = 15_000) -> None:
        try:
            await self.page.wait_for_load_state("networkidle", timeout=timeout)
        except Exception as exc:
            logger.debug("Navigation did not settle (%s) — continuing.", exc)

    # --- querying / interaction ---

    async def query(self, selector: str, *, timeout: float = 5_000) -> Any | None:
        try:
            return await self.page.wait_for_selector(selector, timeout=timeout)
        except Exception:
            return None

    async def fill(self, selector: str, value: str) -> None:
        await self.page.fill(selector, value)

    async def click(self, selector: str, *, timeout: float = 5_000) -> None:
        await self.page.click(selector, timeout=timeout)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        if arg is not None:
            return await self.page.evaluate(expression, arg)
        return await self.page.evaluate(expression)

    # --- state ---

    async def page_url(self) -> str:
        return self.page.url

    async def page_title(self) -> str:
        return await self.page.title()

    async def save_storage_state(self, path: str) -> None:
        if self._context is None:
            return
        await self._context.storage_state(path=path)
        logger.debug("Storage state saved to %s.", path)

    async def is_checkpoint(self) -> bool:
        current = self.page.url.lower()
        return any(frag in current for frag in _CHECKPOINT_FRAGMENTS)
