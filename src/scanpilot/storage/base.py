"""Protocol definition for index stores."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class IndexStore(Protocol):
    """Whole-value key/value persistence.

    No transactional guarantees beyond overwriting a complete value; both
    methods raise ``StorageFailure`` when the backend misbehaves.
    """

    def read(self, key: str) -> dict[str, Any] | None:
        """Return the JSON value stored under *key*, or ``None``."""
        ...

    def write(self, key: str, value: dict[str, Any]) -> None:
        """Replace the value stored under *key*."""
        ...
