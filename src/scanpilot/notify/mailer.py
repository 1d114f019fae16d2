"""HTML email notifier over SMTP."""

from __future__ import annotations

import asyncio
import html
import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Sequence

from scanpilot.exceptions import NotifierFailure
from scanpilot.models import JobPosting
from scanpilot.notify.base import DigestOptions
from scanpilot.settings import AppSettings

logger = logging.getLogger(__name__)


def _cell(value: str | None, default: str = "N/A") -> str:
    return html.escape(value) if value else default


def render_digest_html(postings: Sequence[JobPosting], options: DigestOptions) -> str:
    source = f" from {html.escape(options.source)}" if options.source else ""
    rows = []
    for p in postings:
        score = f"{round((p.match_score or 0) * 100)}%" if p.match_score is not None else "N/A"
        rows.append(
            "<tr>"
            f'<td><a href="{html.escape(p.url, quote=True)}">{_cell(p.title, "(untitled)")}</a></td>'
            f"<td>{_cell(p.company)}</td>"
            f"<td>{score}</td>"
            f"<td>{_cell(p.location)}</td>"
            f"<td>{_cell(p.match_reason, 'No reason provided')}</td>"
            "</tr>"
        )
    if not rows:
        body = "<p>No new job matches this time.</p>"
    else:
        body = (
            '<table border="1" cellpadding="5" style="border-collapse:collapse;width:100%">'
            '<tr style="background-color:#f2f2f2">'
            "<th>Title</th><th>Company</th><th>Match Score</th><th>Location</th><th>Match Reason</th>"
            "</tr>" + "".join(rows) + "</table>"
        )
    return (
        f"<h2>Job Matches{source}</h2>"
        f"<p>Found {len(postings)} potential job matches{' (new)' if options.only_new else ''}:</p>"
        f"{body}"
        f"<p><em>Generated on {datetime.now().strftime('%Y-%m-%d %H:%M')}</em></p>"
    )


def render_failure_html(error_message: str) -> str:
    return (
        "<h2>Job scan failed</h2>"
        f"<p>The scheduled scan stopped with an error:</p><pre>{html.escape(error_message)}</pre>"
        "<p>Postings merged before the failure are kept in the index.</p>"
    )


class SmtpNotifier:
    """Sends digests and failure notices through an SMTP relay."""

    def __init__(self, settings: AppSettings) -> None:
        self._settings = settings

    def is_configured(self) -> bool:
        return not self._settings.smtp_missing()

    async def send(
        self,
        recipient: str,
        postings: Sequence[JobPosting],
        options: DigestOptions,
    ) -> None:
        source = f" from {options.source}" if options.source else ""
        subject = options.subject or f"Job matches{source} - {datetime.now():%Y-%m-%d}"
        logger.info("Sending digest to %s with %d job(s).", recipient, len(postings))
        await self._deliver(recipient, subject, render_digest_html(postings, options))

    async def send_failure(self, recipient: str, error_message: str) -> None:
        logger.info("Sending scan failure notification to %s.", recipient)
        await self._deliver(recipient, "Job scan failed", render_failure_html(error_message))

    async def _deliver(self, recipient: str, subject: str, body_html: str) -> None:
        missing = self._settings.smtp_missing()
        if missing:
            raise NotifierFailure(f"SMTP not configured (missing: {', '.join(missing)})")
        if not recipient:
            raise NotifierFailure("No recipient configured.")

        s = self._settings
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = s.smtp_from or s.smtp_user
        msg["To"] = recipient
        msg.attach(MIMEText(body_html, "html"))

        try:
            await asyncio.to_thread(self._smtp_send, msg, recipient)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotifierFailure(f"SMTP delivery failed: {exc}") from exc

    def _smtp_send(self, msg: MIMEMultipart, recipient: str) -> None:
        s = self._settings
        if s.smtp_secure:
            server: smtplib.SMTP = smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=30)
        else:
            server = smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=30)
        with server:
            if not s.smtp_secure:
                server.starttls()
            server.login(s.smtp_user, s.smtp_password)
            server.sendmail(msg["From"], [recipient], msg.as_string())
