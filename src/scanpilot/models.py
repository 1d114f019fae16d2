"""Domain models for ScanPilot."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ScanStatus(str, Enum):
    """Deep-scan state of a single posting."""

    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"


class ScanErrorKind(str, Enum):
    """Closed taxonomy of per-posting scan failures."""

    TIMEOUT = "timeout"
    FETCH_ERROR = "fetch_error"
    PARSE_ERROR = "parse_error"
    UNKNOWN = "unknown"


class SessionStatus(str, Enum):
    IDLE = "idle"
    QUEUED = "queued"
    RUNNING = "running"
    DEEP_SCANNING = "deep_scanning"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED}
)

_ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.IDLE: frozenset({SessionStatus.QUEUED}),
    SessionStatus.QUEUED: frozenset(
        {SessionStatus.RUNNING, SessionStatus.CANCELLING, SessionStatus.FAILED}
    ),
    SessionStatus.RUNNING: frozenset(
        {
            SessionStatus.DEEP_SCANNING,
            SessionStatus.CANCELLING,
            SessionStatus.FAILED,
        }
    ),
    SessionStatus.DEEP_SCANNING: frozenset(
        {
            SessionStatus.COMPLETED,
            SessionStatus.CANCELLING,
            SessionStatus.FAILED,
        }
    ),
    SessionStatus.CANCELLING: frozenset(
        {SessionStatus.CANCELLED, SessionStatus.FAILED}
    ),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.FAILED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
}


@dataclass
class ScanError:
    """Classified failure attached to a posting whose deep scan failed."""

    kind: str
    message: str
    timestamp: str = field(default_factory=utc_now)


@dataclass
class RawListing:
    """One record as returned by a search provider."""

    url: str
    title: str | None = None
    company: str | None = None
    location: str | None = None
    posted: str | None = None

    def carried_fields(self) -> dict[str, str]:
        """Return only the fields this listing actually carries."""
        return {
            k: v
            for k, v in (
                ("url", self.url),
                ("title", self.title),
                ("company", self.company),
                ("location", self.location),
                ("posted", self.posted),
            )
            if v is not None
        }


@dataclass
class JobPosting:
    """A discovered listing together with its scan state and match results."""

    id: str
    url: str
    title: str = ""
    company: str = ""
    location: str = ""
    posted: str | None = None
    source_query: str = ""
    discovered_at: str = field(default_factory=utc_now)
    scanned: bool = False
    scan_status: ScanStatus = ScanStatus.PENDING
    scan_date: str | None = None
    match_score: float | None = None
    match_reason: str | None = None
    description: str | None = None
    requirements: list[str] = field(default_factory=list)
    salary: str | None = None
    scan_error: ScanError | None = None
    sent_in_digest: bool = False
    digest_sent_date: str | None = None

    def clear_scan_state(self) -> None:
        """Forget match results so the deep scan picks the posting up again."""
        self.scanned = False
        self.scan_status = ScanStatus.PENDING
        self.scan_date = None
        self.match_score = None
        self.match_reason = None
        self.scan_error = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["scan_status"] = self.scan_status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobPosting":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs["scan_status"] = ScanStatus(kwargs.get("scan_status") or ScanStatus.PENDING)
        if isinstance(kwargs.get("scan_error"), dict):
            kwargs["scan_error"] = ScanError(**kwargs["scan_error"])
        kwargs["requirements"] = list(kwargs.get("requirements") or [])
        return cls(**kwargs)


@dataclass
class JobIndex:
    """Deduplicated aggregate of every known posting plus scan metadata."""

    postings: dict[str, JobPosting] = field(default_factory=dict)
    last_scan_date: str | None = None
    last_update: str | None = None
    profile_hash: str | None = None

    def __len__(self) -> int:
        return len(self.postings)

    def get_unscanned(self) -> list[JobPosting]:
        return [p for p in self.postings.values() if not p.scanned]

    def get_matched(self, min_score: float) -> list[JobPosting]:
        return [
            p
            for p in self.postings.values()
            if p.scanned
            and p.scan_status is ScanStatus.COMPLETED
            and p.match_score is not None
            and p.match_score >= min_score
        ]

    def get_failed(self, kind: str | None = None) -> list[JobPosting]:
        failed = [p for p in self.postings.values() if p.scan_status is ScanStatus.ERROR]
        if kind:
            failed = [p for p in failed if p.scan_error and p.scan_error.kind == kind]
        return failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobs": [p.to_dict() for p in self.postings.values()],
            "last_scan_date": self.last_scan_date,
            "last_update": self.last_update,
            "profile_hash": self.profile_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "JobIndex":
        if not data:
            return cls()
        postings: dict[str, JobPosting] = {}
        for raw in data.get("jobs", []):
            posting = JobPosting.from_dict(raw)
            postings[posting.id] = posting
        return cls(
            postings=postings,
            last_scan_date=data.get("last_scan_date"),
            last_update=data.get("last_update"),
            profile_hash=data.get("profile_hash"),
        )


@dataclass(frozen=True)
class PageContent:
    """Full text of a single posting page."""

    title: str
    url: str
    full_text: str


@dataclass
class ScoreResult:
    """Relevance judgment plus any fields the scorer extracted."""

    match_score: float
    match_reason: str
    source: str = "llm"  # llm or fallback
    title: str | None = None
    company: str | None = None
    location: str | None = None
    description: str | None = None
    salary: str | None = None
    requirements: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CandidateProfile:
    """Free-text profile plus search plan, read-only to the pipeline."""

    profile: str = ""
    scan_prompt: str = ""
    search_urls: tuple[str, ...] = ()
    search_terms: tuple[str, ...] = ()


@dataclass
class DeepScanProgress:
    total: int = 0
    completed: int = 0
    errors: int = 0
    current: dict[str, Any] | None = None


@dataclass
class ScanSession:
    """Transient state of one orchestration run."""

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    status: SessionStatus = SessionStatus.IDLE
    rescan: bool = False
    start_time: str | None = None
    end_time: str | None = None
    search_targets: list[str] = field(default_factory=list)
    scanned_sources: list[str] = field(default_factory=list)
    total_found: int = 0
    deep_scan_progress: DeepScanProgress | None = None
    cancelled: bool = False
    error: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def active(self) -> bool:
        return self.status not in TERMINAL_STATUSES and self.status is not SessionStatus.IDLE

    def transition(self, new_status: SessionStatus) -> None:
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(
                f"Illegal session transition {self.status.value} -> {new_status.value}"
            )
        self.status = new_status
        if new_status in TERMINAL_STATUSES:
            self.end_time = utc_now()

    def snapshot(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class DigestResult:
    """Outcome of one digest gate invocation."""

    success: bool
    delivered: bool = False
    jobs_sent: int = 0
    marked_as_sent: int = 0
    error: str = ""
