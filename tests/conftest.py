"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import copy
from typing import Any

import pytest

from scanpilot.exceptions import FetchError, NotifierFailure, StorageFailure
from scanpilot.models import CandidateProfile, PageContent, RawListing
from scanpilot.settings import AppSettings
from scanpilot.storage.job_index import JobIndexRepository


class MemoryStore:
    """Dict-backed index store; copies values like a real serialising store."""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.writes = 0
        self.fail_writes = False
        self.fail_reads = False

    def read(self, key: str) -> dict[str, Any] | None:
        if self.fail_reads:
            raise StorageFailure("index unreadable")
        value = self.data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def write(self, key: str, value: dict[str, Any]) -> None:
        if self.fail_writes:
            raise StorageFailure("disk full")
        self.writes += 1
        self.data[key] = copy.deepcopy(value)


class FakeSearchProvider:
    """Returns canned listings per URL; a value that is an exception is raised."""

    def __init__(self, results: dict[str, Any] | None = None, *, start_error: Exception | None = None) -> None:
        self.results = results or {}
        self.start_error = start_error
        self.searched: list[str] = []
        self.started = False
        self.closed = False

    async def start(self) -> None:
        self.started = True
        if self.start_error is not None:
            raise self.start_error

    async def close(self) -> None:
        self.closed = True

    async def search(self, url: str) -> list[RawListing]:
        self.searched.append(url)
        value = self.results.get(url, [])
        if isinstance(value, Exception):
            raise value
        return list(value)


class FakeFetcher:
    """Serves page text per URL; missing URLs raise ``FetchError``.

    *delays* maps a URL to seconds to sleep before answering.
    """

    def __init__(self, pages: dict[str, str] | None = None, delays: dict[str, float] | None = None) -> None:
        self.pages = pages or {}
        self.delays = delays or {}
        self.fetched: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def start(self) -> None:
        return None

    async def close(self) -> None:
        self.closed = True

    async def fetch(self, url: str) -> PageContent:
        self.fetched.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(url, 0))
            if url not in self.pages:
                raise FetchError(f"HTTP 404 for {url}")
            return PageContent(title="", url=url, full_text=self.pages[url])
        finally:
            self.in_flight -= 1


class FakeNotifier:
    def __init__(self, *, fail: bool = False, configured: bool = True) -> None:
        self.fail = fail
        self.configured = configured
        self.sent: list[tuple[str, list, Any]] = []
        self.failures: list[tuple[str, str]] = []

    def is_configured(self) -> bool:
        return self.configured

    async def send(self, recipient, postings, options) -> None:
        if self.fail:
            raise NotifierFailure("SMTP relay refused connection")
        self.sent.append((recipient, list(postings), options))

    async def send_failure(self, recipient, error_message) -> None:
        if self.fail:
            raise NotifierFailure("SMTP relay refused connection")
        self.failures.append((recipient, error_message))


def listing(job_id: str, title: str = "Software Engineer", company: str = "Acme", **kw) -> RawListing:
    return RawListing(
        url=f"https://www.linkedin.com/jobs/view/{job_id}/",
        title=title,
        company=company,
        location=kw.pop("location", "Remote"),
        **kw,
    )


@pytest.fixture()
def settings(tmp_path):
    return AppSettings(
        state_dir=str(tmp_path / ".state"),
        search_urls=["https://search.example/a"],
        digest_to="me@example.com",
        batch_pause_seconds=0,
        job_timeout_seconds=5,
        deep_scan_concurrency=2,
        max_deep_scan_jobs=10,
        min_match_score=0.5,
    )


@pytest.fixture()
def profile():
    return CandidateProfile(
        profile="Python software engineer, remote, backend services",
        scan_prompt="Prefer remote roles",
    )


@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def repository(store):
    return JobIndexRepository(store, "job_index")


@pytest.fixture()
def tmp_settings_yaml(tmp_path):
    """Write a minimal settings.yaml and return its path."""
    content = """\
email: "test@example.com"
password: "hunter2"
headless: true
keywords:
  - "python"
locations:
  - "NorthAmerica"
date_posted: "Past Week"
sort_order: "Recent"
deep_scan_concurrency: 3
min_match_score: 0.8
digest_to: "me@example.com"
smtp_host: "smtp.example.com"
smtp_user: "mailer"
smtp_password: "secret"
state_dir: "{state}"
""".format(state=str(tmp_path / ".state"))
    p = tmp_path / "settings.yaml"
    p.write_text(content)
    return p
