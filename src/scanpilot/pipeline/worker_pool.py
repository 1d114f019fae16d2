"""Bounded-concurrency deep scan over unscanned postings."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from scanpilot.discovery.base import PageFetcher
from scanpilot.evaluation.scorer import RelevanceScorer
from scanpilot.exceptions import PostingScanError
from scanpilot.models import (
    CandidateProfile,
    JobPosting,
    ScanError,
    ScanErrorKind,
    ScanStatus,
    ScoreResult,
    utc_now,
)
from scanpilot.pipeline.cancellation import CancellationToken
from scanpilot.pipeline.events import BatchFinished, JobFinished, ProgressChannel

logger = logging.getLogger(__name__)


@dataclass
class PoolReport:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: bool = False

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed


def apply_success(posting: JobPosting, result: ScoreResult) -> None:
    """Write a score onto *posting*; extracted fields beat scraped ones."""
    posting.scanned = True
    posting.scan_status = ScanStatus.COMPLETED
    posting.scan_date = utc_now()
    posting.scan_error = None
    for name in ("title", "company", "location", "description", "salary"):
        value = getattr(result, name)
        if value:
            setattr(posting, name, value)
    if result.requirements:
        posting.requirements = list(result.requirements)
    posting.match_score = result.match_score
    posting.match_reason = result.match_reason


def apply_failure(posting: JobPosting, kind: ScanErrorKind, message: str) -> None:
    """Record a classified failure; the posting is not retried automatically."""
    now = utc_now()
    posting.scanned = True
    posting.scan_status = ScanStatus.ERROR
    posting.scan_date = now
    posting.match_score = 0.0
    posting.match_reason = f"Deep scan failed ({kind.value})"
    posting.scan_error = ScanError(kind=kind.value, message=message, timestamp=now)


class DeepScanWorkerPool:
    """Scores postings in strictly sequential fixed-size batches.

    Every job in a batch runs concurrently and the next batch starts only
    after all of them have resolved.  The cancellation token is checked
    before each batch and before each job starts; in-flight jobs always run
    to completion or to the per-job timeout.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        scorer: RelevanceScorer,
        profile: CandidateProfile,
        *,
        concurrency: int = 2,
        job_timeout: float = 300.0,
        batch_pause: float = 1.0,
        cancel_token: CancellationToken | None = None,
        channel: ProgressChannel | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._scorer = scorer
        self._profile = profile
        self._concurrency = max(1, concurrency)
        self._job_timeout = job_timeout
        self._batch_pause = batch_pause
        self._token = cancel_token or CancellationToken()
        self._channel = channel or ProgressChannel()

    async def run(self, postings: list[JobPosting]) -> PoolReport:
        report = PoolReport(total=len(postings))
        batch_count = -(-len(postings) // self._concurrency)
        logger.info(
            "Deep scanning %d posting(s) in %d batch(es) of up to %d.",
            len(postings),
            batch_count,
            self._concurrency,
        )

        for batch_number, start in enumerate(range(0, len(postings), self._concurrency), 1):
            if self._token.cancelled:
                report.cancelled = True
                break
            batch = postings[start : start + self._concurrency]
            outcomes = await asyncio.gather(
                *(
                    self._scan_one(posting, start + offset + 1, len(postings))
                    for offset, posting in enumerate(batch)
                )
            )
            for ok in outcomes:
                if ok is True:
                    report.succeeded += 1
                elif ok is False:
                    report.failed += 1
                else:
                    report.cancelled = True

            logger.info(
                "Completed batch %d/%d (%d/%d postings).",
                batch_number,
                batch_count,
                report.processed,
                len(postings),
            )
            self._channel.batch_finished(
                BatchFinished(batch_number, batch_count, report.processed, len(postings))
            )
            if report.cancelled:
                break
            if batch_number < batch_count and not self._token.cancelled:
                await asyncio.sleep(self._batch_pause)

        if self._token.cancelled:
            report.cancelled = True
            logger.info("Deep scan cancelled after %d posting(s).", report.processed)
        return report

    async def _scan_one(self, posting: JobPosting, index: int, total: int) -> bool | None:
        """Return ``True``/``False`` for success/failure, ``None`` if never started."""
        if self._token.cancelled:
            return None
        self._channel.job_started(posting, index, total)
        logger.info("Deep scanning %d/%d: %s at %s", index, total, posting.title, posting.company)

        ok = False
        try:
            result = await asyncio.wait_for(self._fetch_and_score(posting), self._job_timeout)
        except (asyncio.TimeoutError, TimeoutError):
            apply_failure(
                posting,
                ScanErrorKind.TIMEOUT,
                f"Deep scan did not finish within {self._job_timeout:g}s",
            )
            logger.warning("Timed out scanning %s.", posting.url)
        except PostingScanError as exc:
            apply_failure(posting, ScanErrorKind(exc.kind), str(exc))
            logger.warning("Scan of %s failed (%s): %s", posting.url, exc.kind, exc)
        except Exception as exc:
            apply_failure(posting, ScanErrorKind.UNKNOWN, f"{type(exc).__name__}: {exc}")
            logger.exception("Unexpected error scanning %s.", posting.url)
        else:
            apply_success(posting, result)
            ok = True
            logger.info("Scan complete for %s, match score %.2f.", posting.id, result.match_score)

        self._channel.job_finished(JobFinished(posting, index, total, ok))
        return ok

    async def _fetch_and_score(self, posting: JobPosting) -> ScoreResult:
        page = await self._fetcher.fetch(posting.url)
        return await self._scorer.score(posting, page, self._profile)
