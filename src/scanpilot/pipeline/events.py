"""Progress events published by the deep-scan worker pool."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from scanpilot.models import JobPosting

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobFinished:
    posting: JobPosting
    index: int
    total: int
    ok: bool


@dataclass(frozen=True)
class BatchFinished:
    batch_number: int
    batch_count: int
    processed: int
    total: int


class ProgressObserver(Protocol):
    def job_started(self, posting: JobPosting, index: int, total: int) -> None:
        ...

    def job_finished(self, event: JobFinished) -> None:
        ...

    def batch_finished(self, event: BatchFinished) -> None:
        ...


class ProgressChannel:
    """Fans pool events out to subscribers; a failing subscriber is logged and skipped."""

    def __init__(self) -> None:
        self._subscribers: list[ProgressObserver] = []

    def subscribe(self, observer: ProgressObserver) -> None:
        self._subscribers.append(observer)

    def job_started(self, posting: JobPosting, index: int, total: int) -> None:
        for sub in self._subscribers:
            try:
                sub.job_started(posting, index, total)
            except Exception:
                logger.exception("Progress subscriber failed on job_started.")

    def job_finished(self, event: JobFinished) -> None:
        for sub in self._subscribers:
            try:
                sub.job_finished(event)
            except Exception:
                logger.exception("Progress subscriber failed on job_finished.")

    def batch_finished(self, event: BatchFinished) -> None:
        for sub in self._subscribers:
            try:
                sub.batch_finished(event)
            except Exception:
                logger.exception("Progress subscriber failed on batch_finished.")
