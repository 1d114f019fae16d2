"""Digest gate: pick newly qualified postings and notify at least once."""

from __future__ import annotations

import logging

from scanpilot.exceptions import NotifierFailure, StorageFailure
from scanpilot.models import DigestResult, JobIndex, JobPosting, ScanStatus, utc_now
from scanpilot.notify.base import DigestOptions, Notifier
from scanpilot.storage.job_index import JobIndexRepository

logger = logging.getLogger(__name__)


def select_eligible(
    index: JobIndex,
    min_match_score: float,
    include_previously_sent: bool = False,
) -> list[JobPosting]:
    """Completed postings at or above the threshold, best score first."""
    eligible = [
        p
        for p in index.postings.values()
        if p.scanned
        and p.scan_status is ScanStatus.COMPLETED
        and p.match_score is not None
        and p.match_score >= min_match_score
        and (include_previously_sent or not p.sent_in_digest)
    ]
    return sorted(eligible, key=lambda p: p.match_score or 0.0, reverse=True)


class DigestGate:
    """Sends one digest and marks its postings only after confirmed delivery.

    A delivery failure leaves every posting unmarked, so calling the gate
    again resends the identical set.
    """

    def __init__(self, repository: JobIndexRepository, notifier: Notifier) -> None:
        self._repository = repository
        self._notifier = notifier

    async def send(
        self,
        recipient: str,
        *,
        min_match_score: float,
        include_previously_sent: bool = False,
        send_empty: bool = False,
        source: str = "manual",
    ) -> DigestResult:
        if not recipient:
            return DigestResult(success=False, error="No digest recipient configured.")

        index = self._repository.load()
        postings = select_eligible(index, min_match_score, include_previously_sent)
        logger.info(
            "%d posting(s) eligible for digest (min score %.2f).",
            len(postings),
            min_match_score,
        )
        if not postings and not send_empty:
            return DigestResult(success=True)

        options = DigestOptions(source=source, only_new=not include_previously_sent)
        try:
            await self._notifier.send(recipient, postings, options)
        except NotifierFailure as exc:
            logger.warning("Digest delivery failed: %s — no postings marked as sent.", exc)
            return DigestResult(success=False, error=str(exc))

        now = utc_now()
        for posting in postings:
            posting.sent_in_digest = True
            posting.digest_sent_date = now
        if postings:
            try:
                self._repository.save(index)
            except StorageFailure as exc:
                logger.warning("Digest delivered but postings could not be marked as sent: %s", exc)
                return DigestResult(
                    success=False,
                    delivered=True,
                    jobs_sent=len(postings),
                    error=f"Digest delivered but not recorded: {exc}",
                )
        logger.info("Digest sent to %s, marked %d posting(s) as sent.", recipient, len(postings))
        return DigestResult(
            success=True,
            delivered=True,
            jobs_sent=len(postings),
            marked_as_sent=len(postings),
        )
