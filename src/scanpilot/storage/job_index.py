"""Load, save and query the persistent job index."""

from __future__ import annotations

import hashlib
import logging
from collections import Counter
from pathlib import Path
from typing import Any

from scanpilot.exceptions import ConfigurationError
from scanpilot.models import JobIndex, ScanStatus, utc_now
from scanpilot.storage.base import IndexStore
from scanpilot.storage.file_store import JsonFileIndexStore
from scanpilot.storage.sqlite_store import SqliteIndexStore

logger = logging.getLogger(__name__)


def profile_hash(profile_text: str) -> str:
    return hashlib.md5(profile_text.encode("utf-8")).hexdigest()


class JobIndexRepository:
    """Full-document persistence of the :class:`JobIndex`.

    Every save overwrites the whole index.  Writers are serialised by the
    orchestrator's single-flight session, so no locking happens here.
    """

    def __init__(self, store: IndexStore, key: str = "job_index") -> None:
        self._store = store
        self._key = key

    def load(self) -> JobIndex:
        return JobIndex.from_dict(self._store.read(self._key))

    def save(self, index: JobIndex) -> None:
        index.last_update = utc_now()
        self._store.write(self._key, index.to_dict())
        logger.debug("Saved job index (%d postings).", len(index))

    def profile_changed(self, profile_text: str) -> bool:
        """Record the hash of *profile_text* and report whether it moved.

        The first profile ever seen is stored without counting as a change.
        """
        index = self.load()
        current = profile_hash(profile_text)
        previous = index.profile_hash
        if previous == current:
            return False
        index.profile_hash = current
        self.save(index)
        if previous is None:
            logger.info("Stored initial profile hash.")
            return False
        logger.info("Profile changed since the last scan — existing scores are stale.")
        return True

    def reset(self) -> int:
        """Empty the index and return how many postings were removed."""
        index = self.load()
        removed = len(index)
        fresh = JobIndex(profile_hash=index.profile_hash)
        self.save(fresh)
        logger.info("Job index reset: removed %d postings.", removed)
        return removed


def summarize(index: JobIndex, min_score: float) -> dict[str, Any]:
    """Counts by scan and match status for status queries."""
    postings = list(index.postings.values())
    scanned = [p for p in postings if p.scanned]
    return {
        "total": len(postings),
        "scanned": len(scanned),
        "unscanned": len(postings) - len(scanned),
        "completed": sum(1 for p in postings if p.scan_status is ScanStatus.COMPLETED),
        "errors": sum(1 for p in postings if p.scan_status is ScanStatus.ERROR),
        "matched": len(index.get_matched(min_score)),
        "sent_in_digest": sum(1 for p in postings if p.sent_in_digest),
        "last_scan_date": index.last_scan_date,
        "last_update": index.last_update,
    }


def failed_report(index: JobIndex, kind: str | None = None) -> dict[str, Any]:
    """Failed postings grouped by their classified error kind."""
    failed = index.get_failed(kind)
    by_kind = Counter(p.scan_error.kind if p.scan_error else "unknown" for p in failed)
    return {
        "total_failed": len(failed),
        "by_kind": dict(by_kind),
        "jobs": [
            {
                "id": p.id,
                "title": p.title,
                "company": p.company,
                "url": p.url,
                "kind": p.scan_error.kind if p.scan_error else "unknown",
                "message": p.scan_error.message if p.scan_error else "",
                "timestamp": p.scan_error.timestamp if p.scan_error else p.scan_date,
            }
            for p in failed
        ],
    }


def build_store(backend: str, state_dir: str | Path) -> IndexStore:
    """Instantiate the configured index store backend."""
    if backend == "json":
        return JsonFileIndexStore(state_dir)
    if backend == "sqlite":
        return SqliteIndexStore(Path(state_dir) / "index.db")
    raise ConfigurationError(f"Unknown index backend: {backend!r}")
