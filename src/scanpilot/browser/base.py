"""Protocol definition for browser adapters."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class BrowserAdapter(Protocol):
    """Thin abstraction over a browser automation library.

    Every method is async so the search provider can ``await`` each step.
    """

    async def launch(
        self,
        headless: bool = True,
        slow_mo: int = 0,
        storage_state_path: str | None = None,
    ) -> None:
        """Start the browser process."""
        ...

    async def close(self) -> None:
        """Shut down the browser and free resources."""
        ...

    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        ...

    async def wait_for_navigation(self, timeout: float = 15_000) -> None:
        """Wait for the page to settle after a form submit."""
        ...

    async def query(self, selector: str, *, timeout: float = 5_000) -> Any | None:
        """Return the first element matching *selector*, or ``None``."""
        ...

    async def fill(self, selector: str, value: str) -> None:
        ...

    async def click(self, selector: str, *, timeout: float = 5_000) -> None:
        ...

    async def page_url(self) -> str:
        ...

    async def page_title(self) -> str:
        ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Run a JS expression and return the result."""
        ...

    async def save_storage_state(self, path: str) -> None:
        """Persist cookies / localStorage to *path* (JSON)."""
        ...

    async def is_checkpoint(self) -> bool:
        """Return ``True`` if the current URL is a login or verification wall."""
        ...
