"""Tests for the bounded-concurrency deep scan."""

from __future__ import annotations

import asyncio

from conftest import FakeFetcher, listing

from scanpilot.evaluation.scorer import RelevanceScorer
from scanpilot.exceptions import PageParseError
from scanpilot.models import JobIndex, ScanStatus
from scanpilot.pipeline.cancellation import CancellationToken
from scanpilot.pipeline.events import ProgressChannel
from scanpilot.pipeline.worker_pool import DeepScanWorkerPool
from scanpilot.storage.identity import merge


def _postings(n: int):
    index = JobIndex()
    merge(index, [listing(str(i)) for i in range(1, n + 1)])
    return list(index.postings.values())


def _pages(postings, text="Python software engineer role, remote."):
    return {p.url: text for p in postings}


class _Recorder:
    def __init__(self, on_batch=None) -> None:
        self.started = []
        self.finished = []
        self.batches = []
        self._on_batch = on_batch

    def job_started(self, posting, index, total):
        self.started.append(posting.id)

    def job_finished(self, event):
        self.finished.append((event.posting.id, event.ok))

    def batch_finished(self, event):
        self.batches.append(event)
        if self._on_batch:
            self._on_batch(event)


def _pool(fetcher, profile, *, token=None, recorder=None, concurrency=2, timeout=5.0):
    channel = ProgressChannel()
    if recorder:
        channel.subscribe(recorder)
    return DeepScanWorkerPool(
        fetcher,
        RelevanceScorer(None, bonus_terms=["engineer"]),
        profile,
        concurrency=concurrency,
        job_timeout=timeout,
        batch_pause=0,
        cancel_token=token,
        channel=channel,
    )


def test_all_postings_scored(profile):
    postings = _postings(5)
    fetcher = FakeFetcher(_pages(postings))
    report = asyncio.run(_pool(fetcher, profile).run(postings))

    assert report.total == 5
    assert report.succeeded == 5
    assert report.failed == 0
    assert not report.cancelled
    for p in postings:
        assert p.scanned is True
        assert p.scan_status is ScanStatus.COMPLETED
        assert 0.0 <= p.match_score <= 1.0
        assert p.scan_date is not None


def test_concurrency_never_exceeds_limit(profile):
    postings = _postings(6)
    fetcher = FakeFetcher(_pages(postings), delays={p.url: 0.01 for p in postings})
    asyncio.run(_pool(fetcher, profile, concurrency=2).run(postings))
    assert fetcher.max_in_flight == 2


def test_batches_are_sequential(profile):
    postings = _postings(5)
    recorder = _Recorder()
    fetcher = FakeFetcher(_pages(postings))
    asyncio.run(_pool(fetcher, profile, recorder=recorder).run(postings))

    assert [b.batch_number for b in recorder.batches] == [1, 2, 3]
    assert recorder.batches[-1].batch_count == 3
    assert [b.processed for b in recorder.batches] == [2, 4, 5]


def test_fetch_failure_is_recorded_and_batch_continues(profile):
    postings = _postings(2)
    fetcher = FakeFetcher({postings[1].url: "Python engineer"})
    report = asyncio.run(_pool(fetcher, profile).run(postings))

    assert report.failed == 1
    assert report.succeeded == 1
    bad = postings[0]
    assert bad.scanned is True
    assert bad.scan_status is ScanStatus.ERROR
    assert bad.match_score == 0.0
    assert bad.scan_error.kind == "fetch_error"
    assert postings[1].scan_status is ScanStatus.COMPLETED


def test_timeout_is_classified(profile):
    postings = _postings(2)
    fetcher = FakeFetcher(_pages(postings), delays={postings[0].url: 1.0})
    report = asyncio.run(_pool(fetcher, profile, timeout=0.05).run(postings))

    assert report.failed == 1
    assert postings[0].scan_error.kind == "timeout"
    assert postings[1].scan_status is ScanStatus.COMPLETED


def test_parse_and_unexpected_errors_are_classified(profile):
    postings = _postings(2)

    class _Fetcher(FakeFetcher):
        async def fetch(self, url):
            if url == postings[0].url:
                raise PageParseError("empty page")
            raise KeyError("boom")

    asyncio.run(_pool(_Fetcher(), profile).run(postings))
    assert postings[0].scan_error.kind == "parse_error"
    assert postings[1].scan_error.kind == "unknown"


def test_cancel_after_first_batch_stops_remaining(profile):
    postings = _postings(6)
    token = CancellationToken()
    recorder = _Recorder(on_batch=lambda event: token.cancel())
    fetcher = FakeFetcher(_pages(postings))

    report = asyncio.run(_pool(fetcher, profile, token=token, recorder=recorder).run(postings))

    assert report.cancelled is True
    assert report.processed == 2
    assert [p.scanned for p in postings] == [True, True, False, False, False, False]
    assert len(fetcher.fetched) == 2


def test_cancel_before_start_scans_nothing(profile):
    postings = _postings(3)
    token = CancellationToken()
    token.cancel()
    fetcher = FakeFetcher(_pages(postings))
    report = asyncio.run(_pool(fetcher, profile, token=token).run(postings))

    assert report.cancelled is True
    assert report.processed == 0
    assert fetcher.fetched == []


def test_failing_subscriber_does_not_break_pool(profile):
    class _Broken:
        def job_started(self, posting, index, total):
            raise RuntimeError("ui crashed")

        def job_finished(self, event):
            raise RuntimeError("ui crashed")

        def batch_finished(self, event):
            raise RuntimeError("ui crashed")

    postings = _postings(2)
    fetcher = FakeFetcher(_pages(postings))
    pool = _pool(fetcher, profile, recorder=_Broken())
    report = asyncio.run(pool.run(postings))
    assert report.succeeded == 2


def test_empty_input_is_a_no_op(profile):
    report = asyncio.run(_pool(FakeFetcher(), profile).run([]))
    assert report.total == 0
    assert report.processed == 0
