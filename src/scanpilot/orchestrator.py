"""Scan coordinator — Search → Merge → Deep scan → Notify."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from scanpilot.discovery.base import PageFetcher, SearchProvider
from scanpilot.discovery.fixtures import FixturePageFetcher, FixtureSearchProvider, load_fixtures
from scanpilot.discovery.listing_scraper import PlaywrightSearchProvider
from scanpilot.discovery.page_fetcher import HttpPageFetcher
from scanpilot.discovery.query_builder import resolve_search_targets
from scanpilot.evaluation.openai_provider import OpenAIScoringProvider
from scanpilot.evaluation.scorer import RelevanceScorer
from scanpilot.exceptions import (
    AuthenticationCheckpoint,
    ConfigurationError,
    NotifierFailure,
    ScanInProgressError,
    SearchExtractionFailure,
    StorageFailure,
)
from scanpilot.models import (
    CandidateProfile,
    DeepScanProgress,
    DigestResult,
    JobIndex,
    JobPosting,
    ScanSession,
    SessionStatus,
    utc_now,
)
from scanpilot.notify.base import Notifier
from scanpilot.notify.digest import DigestGate
from scanpilot.notify.mailer import SmtpNotifier
from scanpilot.pipeline.cancellation import CancellationToken
from scanpilot.pipeline.events import BatchFinished, JobFinished, ProgressChannel, ProgressObserver
from scanpilot.pipeline.worker_pool import DeepScanWorkerPool
from scanpilot.settings import AppSettings
from scanpilot.storage.identity import merge, reset_scan_state
from scanpilot.storage.job_index import JobIndexRepository, build_store, failed_report, summarize

logger = logging.getLogger(__name__)


class SessionProgressTracker:
    """Keeps a session's ``deep_scan_progress`` current for status polling."""

    def __init__(self, session: ScanSession) -> None:
        self._session = session

    @property
    def _progress(self) -> DeepScanProgress:
        if self._session.deep_scan_progress is None:
            self._session.deep_scan_progress = DeepScanProgress()
        return self._session.deep_scan_progress

    def job_started(self, posting: JobPosting, index: int, total: int) -> None:
        self._progress.current = {
            "index": index,
            "title": posting.title,
            "company": posting.company,
            "url": posting.url,
        }

    def job_finished(self, event: JobFinished) -> None:
        if event.ok:
            self._progress.completed += 1
        else:
            self._progress.errors += 1

    def batch_finished(self, event: BatchFinished) -> None:
        logger.debug(
            "Session %s: batch %d/%d done.",
            self._session.session_id,
            event.batch_number,
            event.batch_count,
        )


@dataclass
class _SessionContext:
    """State owned by one run."""

    session: ScanSession
    token: CancellationToken
    ad_hoc_url: str | None = None
    send_digest: bool = True
    index: JobIndex | None = None
    force_rescan: bool = False
    task: asyncio.Task | None = field(default=None, repr=False)


class ScanOrchestrator:
    """Drives scan sessions and guarantees at most one is active at a time.

    ``start_scan``/``start_rescan`` accept or reject synchronously and then
    run the session as a background task; ``wait`` awaits its end state.
    """

    def __init__(
        self,
        settings: AppSettings,
        *,
        plan: CandidateProfile,
        search_provider: SearchProvider,
        page_fetcher: PageFetcher,
        scorer: RelevanceScorer,
        notifier: Notifier,
        repository: JobIndexRepository,
    ) -> None:
        self._settings = settings
        self._plan = plan
        self._search = search_provider
        self._fetcher = page_fetcher
        self._scorer = scorer
        self._notifier = notifier
        self._repository = repository
        self._digest_gate = DigestGate(repository, notifier)
        self._observers: list[ProgressObserver] = []
        self._contexts: dict[str, _SessionContext] = {}
        self._active_id: str | None = None
        self._last_id: str | None = None

    @classmethod
    def from_settings(cls, settings: AppSettings, plan: CandidateProfile) -> "ScanOrchestrator":
        """Wire real or fixture-backed collaborators from *settings*."""
        search_provider: SearchProvider
        page_fetcher: PageFetcher
        if settings.mock_mode:
            fixtures = load_fixtures(settings.fixtures_file)
            search_provider = FixtureSearchProvider(fixtures["searches"])
            page_fetcher = FixturePageFetcher(fixtures["pages"])
        else:
            search_provider = PlaywrightSearchProvider(
                settings.email,
                settings.password,
                state_dir=settings.state_dir,
                headless=settings.headless,
                slow_mo=settings.slow_mo,
                max_pages=settings.max_search_pages,
            )
            page_fetcher = HttpPageFetcher(settings.fetch_timeout_seconds)

        provider = None
        if settings.openai_api_key and not settings.mock_mode:
            provider = OpenAIScoringProvider(
                settings.openai_api_key,
                settings.openai_model,
                temperature=settings.llm_temperature,
                max_tokens=settings.llm_max_tokens,
                content_chars=settings.llm_content_chars,
            )
        else:
            logger.info("No scoring provider configured — using keyword matching only.")

        Path(settings.state_dir).mkdir(parents=True, exist_ok=True)
        store = build_store(settings.index_backend, settings.state_dir)
        return cls(
            settings,
            plan=plan,
            search_provider=search_provider,
            page_fetcher=page_fetcher,
            scorer=RelevanceScorer(
                provider,
                bonus_terms=settings.bonus_terms,
                fallback_chars=settings.fallback_content_chars,
            ),
            notifier=SmtpNotifier(settings),
            repository=JobIndexRepository(store, settings.index_key),
        )

    # ---- session control ----

    @property
    def active_session(self) -> ScanSession | None:
        if self._active_id is None:
            return None
        return self._contexts[self._active_id].session

    def subscribe(self, observer: ProgressObserver) -> None:
        """Receive deep-scan progress events for every future session."""
        self._observers.append(observer)

    def start_scan(self, url: str | None = None, *, send_digest: bool = True) -> ScanSession:
        return self._start(url, rescan=False, send_digest=send_digest)

    def start_rescan(self, *, send_digest: bool = True) -> ScanSession:
        """Like :meth:`start_scan`, but every known posting is scored again."""
        return self._start(None, rescan=True, send_digest=send_digest)

    def _start(self, url: str | None, *, rescan: bool, send_digest: bool) -> ScanSession:
        if self._active_id is not None:
            raise ScanInProgressError(
                "A scan is already in progress. Wait for it to complete before starting a new one."
            )
        session = ScanSession(rescan=rescan, start_time=utc_now())
        session.transition(SessionStatus.QUEUED)
        ctx = _SessionContext(
            session=session,
            token=CancellationToken(),
            ad_hoc_url=url,
            send_digest=send_digest,
        )
        self._contexts[session.session_id] = ctx
        self._active_id = session.session_id
        self._last_id = session.session_id
        ctx.task = asyncio.create_task(self._run(ctx), name=f"scan-{session.session_id}")
        logger.info(
            "%s %s queued.", "Rescan" if rescan else "Scan", session.session_id
        )
        return session

    async def wait(self, session_id: str | None = None) -> ScanSession:
        """Wait for a session (default: the latest) to reach a terminal state."""
        session_id = session_id or self._last_id
        if session_id is None or session_id not in self._contexts:
            raise KeyError(f"Unknown scan session {session_id!r}")
        ctx = self._contexts[session_id]
        if ctx.task is not None:
            await ctx.task
        return ctx.session

    async def run_scan(self, url: str | None = None, *, rescan: bool = False, send_digest: bool = True) -> ScanSession:
        """Start a session and wait for it to finish."""
        session = self._start(url, rescan=rescan, send_digest=send_digest)
        return await self.wait(session.session_id)

    def cancel(self) -> bool:
        """Request cooperative cancellation of the active session."""
        if self._active_id is None:
            return False
        ctx = self._contexts[self._active_id]
        if not ctx.session.active:
            # already terminal, only the notification is still running
            return False
        ctx.token.cancel()
        ctx.session.cancelled = True
        if ctx.session.status is not SessionStatus.CANCELLING:
            ctx.session.transition(SessionStatus.CANCELLING)
        logger.info(
            "Cancellation requested for %s — stopping after the current job.",
            ctx.session.session_id,
        )
        return True

    # ---- queries ----

    def status(self) -> dict[str, Any]:
        last = self._contexts[self._last_id].session if self._last_id else None
        return {
            "session": last.snapshot() if last else {"status": SessionStatus.IDLE.value},
            "index": summarize(self._repository.load(), self._settings.min_match_score),
        }

    def failed_jobs(self, kind: str | None = None) -> dict[str, Any]:
        return failed_report(self._repository.load(), kind)

    async def send_digest(
        self,
        *,
        min_match_score: float | None = None,
        include_previously_sent: bool = False,
        send_empty: bool = False,
    ) -> DigestResult:
        """Manually trigger the digest gate."""
        self._ensure_idle("send a digest")
        return await self._digest_gate.send(
            self._settings.digest_to,
            min_match_score=(
                self._settings.min_match_score if min_match_score is None else min_match_score
            ),
            include_previously_sent=include_previously_sent,
            send_empty=send_empty,
            source="manual",
        )

    def reset_index(self) -> int:
        self._ensure_idle("reset the job index")
        return self._repository.reset()

    def _ensure_idle(self, action: str) -> None:
        if self._active_id is not None:
            raise ScanInProgressError(f"Cannot {action} while a scan is in progress.")

    # ---- session body ----

    async def _run(self, ctx: _SessionContext) -> None:
        session = ctx.session
        try:
            try:
                await self._execute(ctx)
            except (AuthenticationCheckpoint, ConfigurationError, StorageFailure) as exc:
                logger.error("Scan %s failed: %s", session.session_id, exc)
                self._fail(ctx, exc)
            except Exception as exc:
                logger.exception("Unexpected error in scan %s.", session.session_id)
                self._fail(ctx, exc)

            logger.info(
                "Scan %s finished with status %s.", session.session_id, session.status.value
            )
            # notify before releasing the single-flight slot
            if ctx.send_digest:
                await self._notify(ctx)
        finally:
            self._active_id = None

    async def _execute(self, ctx: _SessionContext) -> None:
        session = ctx.session
        targets = resolve_search_targets(self._settings, self._plan, ctx.ad_hoc_url)
        if not targets:
            raise ConfigurationError("No URL provided and no searches found in the current plan.")
        session.search_targets = targets

        ctx.force_rescan = session.rescan
        if self._plan.profile and self._repository.profile_changed(self._plan.profile):
            if self._settings.rescan_on_profile_change:
                logger.info("Profile changed — rescoring every known posting.")
                ctx.force_rescan = True

        ctx.index = self._repository.load()
        if session.rescan:
            count = reset_scan_state(ctx.index)
            logger.info("Rescan: reset scan state on %d existing posting(s).", count)

        if ctx.token.cancelled:
            self._finish_cancelled(ctx)
            return

        session.transition(SessionStatus.RUNNING)
        await self._search_phase(ctx)
        self._persist(ctx)
        if ctx.token.cancelled:
            self._finish_cancelled(ctx)
            return

        session.transition(SessionStatus.DEEP_SCANNING)
        cancelled = await self._deep_scan_phase(ctx)
        self._persist(ctx)
        if cancelled or ctx.token.cancelled:
            self._finish_cancelled(ctx)
            return

        session.transition(SessionStatus.COMPLETED)

    async def _search_phase(self, ctx: _SessionContext) -> None:
        session = ctx.session
        assert ctx.index is not None
        logger.info("Scanning %d search target(s).", len(session.search_targets))
        try:
            await self._search.start()
            for target in session.search_targets:
                if ctx.token.cancelled:
                    logger.info("Cancellation observed before %s.", target)
                    break
                try:
                    listings = await self._search.search(target)
                except SearchExtractionFailure as exc:
                    warning = f"{target}: {exc}"
                    logger.warning("Skipping search target — %s", warning)
                    session.warnings.append(warning)
                    session.scanned_sources.append(target)
                    continue
                stats = merge(
                    ctx.index,
                    listings,
                    source_query=target,
                    force_rescan=ctx.force_rescan,
                )
                session.total_found += len(listings)
                session.scanned_sources.append(target)
                logger.info(
                    "%d listing(s) from %s (%d new, %d updated).",
                    len(listings),
                    target,
                    stats.added,
                    stats.updated,
                )
        finally:
            await self._search.close()

    async def _deep_scan_phase(self, ctx: _SessionContext) -> bool:
        session = ctx.session
        assert ctx.index is not None
        pending = ctx.index.get_unscanned()[: self._settings.max_deep_scan_jobs]
        session.deep_scan_progress = DeepScanProgress(total=len(pending))
        if not pending:
            logger.info("No unscanned postings — skipping deep scan.")
            return False

        channel = ProgressChannel()
        channel.subscribe(SessionProgressTracker(session))
        for observer in self._observers:
            channel.subscribe(observer)

        pool = DeepScanWorkerPool(
            self._fetcher,
            self._scorer,
            self._plan,
            concurrency=self._settings.deep_scan_concurrency,
            job_timeout=self._settings.job_timeout_seconds,
            batch_pause=self._settings.batch_pause_seconds,
            cancel_token=ctx.token,
            channel=channel,
        )
        try:
            await self._fetcher.start()
            report = await pool.run(pending)
        finally:
            await self._fetcher.close()
            session.deep_scan_progress.current = None
        logger.info(
            "Deep scan phase finished: %d scanned, %d failed.", report.succeeded, report.failed
        )
        return report.cancelled

    def _persist(self, ctx: _SessionContext) -> None:
        if ctx.index is not None:
            self._repository.save(ctx.index)

    def _finish_cancelled(self, ctx: _SessionContext) -> None:
        self._persist(ctx)
        session = ctx.session
        if session.status is not SessionStatus.CANCELLING:
            session.transition(SessionStatus.CANCELLING)
        session.transition(SessionStatus.CANCELLED)
        logger.info("Scan %s cancelled.", session.session_id)

    def _fail(self, ctx: _SessionContext, exc: BaseException) -> None:
        session = ctx.session
        session.error = str(exc) or type(exc).__name__
        if ctx.index is not None and not isinstance(exc, StorageFailure):
            # keep whatever was merged before the failure
            try:
                self._repository.save(ctx.index)
            except StorageFailure as save_exc:
                logger.error("Could not persist partial progress: %s", save_exc)
        if session.active:
            session.transition(SessionStatus.FAILED)

    # ---- notifications ----

    async def _notify(self, ctx: _SessionContext) -> None:
        session = ctx.session
        recipient = self._settings.digest_to
        if session.status not in (SessionStatus.COMPLETED, SessionStatus.FAILED):
            return
        if not recipient or not self._notifier.is_configured():
            logger.info("Digest recipient or SMTP not configured — skipping notification.")
            return

        if session.status is SessionStatus.FAILED:
            try:
                await self._notifier.send_failure(recipient, session.error or "Unknown error")
            except NotifierFailure as exc:
                logger.warning("Failure notification not sent: %s", exc)
            return

        try:
            result = await self._digest_gate.send(
                recipient,
                min_match_score=self._settings.min_match_score,
                send_empty=self._settings.send_digest_on_zero_jobs,
                source="rescan" if session.rescan else "scan",
            )
        except StorageFailure as exc:
            logger.warning("Auto-digest skipped, could not read the job index: %s", exc)
            return
        if result.success:
            logger.info("Auto-digest done: %d job(s) sent.", result.jobs_sent)
        else:
            logger.warning("Auto-digest failed: %s", result.error)
