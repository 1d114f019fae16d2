"""Stable posting identity and the index merge algorithm."""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import urlparse

from scanpilot.models import JobIndex, JobPosting, RawListing, utc_now

logger = logging.getLogger(__name__)

# /jobs/view/<segment>/ where segment is a bare id or a slug ending in the id
_VIEW_SEGMENT = re.compile(r"/view/([^/]+)")
_SLUG_TRAILING_ID = re.compile(r"-(\d+)$")


def derive_id(url: str) -> str:
    """Return the stable identifier for a posting URL.

    Query strings and fragments never take part, so the same listing seen on
    different result pages maps to the same id.  URLs without a ``/view/``
    segment fall back to an MD5 digest of the full URL.
    """
    url = url.strip()
    match = _VIEW_SEGMENT.search(urlparse(url).path)
    if match:
        segment = match.group(1)
        slug = _SLUG_TRAILING_ID.search(segment)
        return slug.group(1) if slug else segment
    return hashlib.md5(url.encode("utf-8")).hexdigest()


@dataclass
class MergeStats:
    added: int = 0
    updated: int = 0
    skipped: int = 0


def merge(
    index: JobIndex,
    incoming: Iterable[RawListing],
    *,
    source_query: str = "",
    force_rescan: bool = False,
) -> MergeStats:
    """Merge *incoming* listings into *index* in place.

    New ids are inserted unscanned.  Known ids receive a field-level overlay
    of whatever the listing carries, so earlier match results survive.  With
    *force_rescan* the merged record's scan state is cleared as well.
    """
    stats = MergeStats()
    for listing in incoming:
        if not listing.url:
            stats.skipped += 1
            continue
        job_id = derive_id(listing.url)
        carried = listing.carried_fields()
        existing = index.postings.get(job_id)
        if existing is None:
            index.postings[job_id] = JobPosting(
                id=job_id,
                url=carried.pop("url"),
                source_query=source_query,
                **carried,
            )
            stats.added += 1
            continue

        for name, value in carried.items():
            setattr(existing, name, value)
        if source_query:
            existing.source_query = source_query
        if force_rescan:
            existing.clear_scan_state()
        stats.updated += 1

    index.last_scan_date = utc_now()
    logger.debug(
        "Merged listings: %d added, %d updated, %d skipped.",
        stats.added,
        stats.updated,
        stats.skipped,
    )
    return stats


def reset_scan_state(index: JobIndex) -> int:
    """Mark every posting unscanned and clear its match fields."""
    for posting in index.postings.values():
        posting.clear_scan_state()
    return len(index.postings)
