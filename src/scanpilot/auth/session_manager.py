"""Login and session persistence via Playwright storage state."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from scanpilot.browser.base import BrowserAdapter
from scanpilot.exceptions import AuthenticationCheckpoint

logger = logging.getLogger(__name__)

_FEED_URL = "https://www.linkedin.com/feed"
_LOGIN_URL = "https://www.linkedin.com/login"


class SessionManager:
    """Logs the search browser in once per scan session.

    A stored session is reused when still valid.  Landing on a checkpoint or
    verification page after login raises :class:`AuthenticationCheckpoint`;
    a headless scan cannot solve those, so the caller stops immediately.
    """

    def __init__(
        self,
        adapter: BrowserAdapter,
        email: str,
        password: str,
        state_dir: str = ".state",
    ) -> None:
        self._adapter = adapter
        self._email = email
        self._password = password
        self._state_dir = Path(state_dir)
        self._state_dir.mkdir(parents=True, exist_ok=True)

    def _state_file(self) -> Path:
        digest = hashlib.sha256(self._email.encode()).hexdigest()[:16]
        return self._state_dir / f"session_{digest}.json"

    def storage_state_path(self) -> str:
        """Path of the stored session to preload at browser launch, or ``""``."""
        p = self._state_file()
        return str(p) if p.exists() else ""

    async def ensure_authenticated(self) -> None:
        state_path = self._state_file()
        if state_path.exists():
            logger.info("Found stored session — verifying…")
            if await self._verify_logged_in():
                logger.info("Stored session is valid.")
                return
            logger.warning("Stored session expired — logging in fresh.")
            state_path.unlink()

        await self._perform_login()
        await self._adapter.save_storage_state(str(state_path))
        logger.info("Session saved to %s.", state_path)

    async def _verify_logged_in(self) -> bool:
        await self._adapter.navigate(_FEED_URL)
        await self._adapter.wait_for_navigation(timeout=8_000)
        if await self._adapter.is_checkpoint():
            return False
        return "/feed" in await self._adapter.page_url()

    async def _perform_login(self) -> None:
        if not self._email or not self._password:
            raise AuthenticationCheckpoint("Search credentials (email/password) are not configured.")

        await self._adapter.navigate(_LOGIN_URL)
        await self._adapter.fill("input#username", self._email)
        await self._adapter.fill("input#password", self._password)
        await self._adapter.click('button[type="submit"]')
        await self._adapter.wait_for_navigation()

        current_url = await self._adapter.page_url()
        if await self._adapter.is_checkpoint():
            raise AuthenticationCheckpoint(
                f"Security verification required at {current_url}. "
                "Log in manually in a browser, then retry the scan."
            )
        if "/login" in current_url:
            raise AuthenticationCheckpoint("Login was rejected — check the configured credentials.")
        logger.info("Login succeeded.")
