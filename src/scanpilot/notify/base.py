"""Protocol definition for notifiers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, runtime_checkable

from scanpilot.models import JobPosting


@dataclass(frozen=True)
class DigestOptions:
    source: str = "scan"
    only_new: bool = True
    subject: str = ""


@runtime_checkable
class Notifier(Protocol):
    """Outbound delivery; both send methods raise ``NotifierFailure``."""

    def is_configured(self) -> bool:
        ...

    async def send(
        self,
        recipient: str,
        postings: Sequence[JobPosting],
        options: DigestOptions,
    ) -> None:
        ...

    async def send_failure(self, recipient: str, error_message: str) -> None:
        ...
