"""Tests for the digest gate and the SMTP notifier."""

from __future__ import annotations

import asyncio
import smtplib
from unittest.mock import patch

import pytest
from conftest import FakeNotifier, listing

from scanpilot.exceptions import NotifierFailure
from scanpilot.models import JobIndex, ScanStatus
from scanpilot.notify.base import DigestOptions
from scanpilot.notify.digest import DigestGate, select_eligible
from scanpilot.notify.mailer import SmtpNotifier, render_digest_html, render_failure_html
from scanpilot.settings import AppSettings
from scanpilot.storage.identity import merge


def _scored_index(scores: dict[str, float]) -> JobIndex:
    index = JobIndex()
    merge(index, [listing(job_id) for job_id in scores])
    for job_id, score in scores.items():
        p = index.postings[job_id]
        p.scanned = True
        p.scan_status = ScanStatus.COMPLETED
        p.match_score = score
        p.match_reason = f"score {score}"
    return index


@pytest.fixture()
def seeded(repository):
    repository.save(_scored_index({"a": 0.9, "b": 0.6, "c": 0.8}))
    return repository


def test_select_eligible_filters_and_sorts():
    index = _scored_index({"a": 0.9, "b": 0.6, "c": 0.8, "d": 0.75})
    index.postings["d"].sent_in_digest = True
    assert [p.id for p in select_eligible(index, 0.7)] == ["a", "c"]
    assert [p.id for p in select_eligible(index, 0.7, True)] == ["a", "c", "d"]


def test_select_eligible_ignores_failed_postings():
    index = _scored_index({"a": 0.9})
    index.postings["a"].scan_status = ScanStatus.ERROR
    assert select_eligible(index, 0.0) == []


def test_successful_digest_marks_included_postings(seeded):
    notifier = FakeNotifier()
    gate = DigestGate(seeded, notifier)

    result = asyncio.run(gate.send("me@example.com", min_match_score=0.7))

    assert result.success and result.delivered
    assert result.jobs_sent == 2
    assert result.marked_as_sent == 2
    assert [p.id for p in notifier.sent[0][1]] == ["a", "c"]
    index = seeded.load()
    assert index.postings["a"].sent_in_digest is True
    assert index.postings["a"].digest_sent_date is not None
    assert index.postings["c"].sent_in_digest is True
    assert index.postings["b"].sent_in_digest is False


def test_failed_delivery_marks_nothing_and_resends_same_set(seeded):
    gate = DigestGate(seeded, FakeNotifier(fail=True))
    result = asyncio.run(gate.send("me@example.com", min_match_score=0.7))

    assert result.success is False
    assert "refused" in result.error
    assert not any(p.sent_in_digest for p in seeded.load().postings.values())

    retry = FakeNotifier()
    asyncio.run(DigestGate(seeded, retry).send("me@example.com", min_match_score=0.7))
    assert [p.id for p in retry.sent[0][1]] == ["a", "c"]


def test_delivered_but_unrecorded_digest_is_reported(seeded, store):
    class _FullDiskAfterSend(FakeNotifier):
        async def send(self, recipient, postings, options):
            await super().send(recipient, postings, options)
            store.fail_writes = True

    notifier = _FullDiskAfterSend()
    result = asyncio.run(DigestGate(seeded, notifier).send("me@example.com", min_match_score=0.7))

    assert result.delivered is True
    assert result.success is False
    assert result.jobs_sent == 2
    assert result.marked_as_sent == 0
    assert "disk full" in result.error
    assert len(notifier.sent) == 1
    assert not any(p.sent_in_digest for p in seeded.load().postings.values())


def test_second_digest_sends_nothing_new(seeded):
    notifier = FakeNotifier()
    gate = DigestGate(seeded, notifier)
    asyncio.run(gate.send("me@example.com", min_match_score=0.7))
    again = asyncio.run(gate.send("me@example.com", min_match_score=0.7))

    assert again.success is True
    assert again.delivered is False
    assert len(notifier.sent) == 1


def test_zero_eligible_sends_only_when_asked(repository):
    notifier = FakeNotifier()
    gate = DigestGate(repository, notifier)

    quiet = asyncio.run(gate.send("me@example.com", min_match_score=0.7))
    assert quiet.success and not quiet.delivered
    assert notifier.sent == []

    loud = asyncio.run(gate.send("me@example.com", min_match_score=0.7, send_empty=True))
    assert loud.delivered and loud.jobs_sent == 0
    assert notifier.sent[0][1] == []


def test_missing_recipient_is_unsuccessful(seeded):
    notifier = FakeNotifier()
    result = asyncio.run(DigestGate(seeded, notifier).send("", min_match_score=0.7))
    assert result.success is False
    assert notifier.sent == []


def test_include_previously_sent(seeded):
    gate = DigestGate(seeded, FakeNotifier())
    asyncio.run(gate.send("me@example.com", min_match_score=0.7))

    notifier = FakeNotifier()
    result = asyncio.run(
        DigestGate(seeded, notifier).send(
            "me@example.com", min_match_score=0.7, include_previously_sent=True
        )
    )
    assert result.jobs_sent == 2
    assert notifier.sent[0][2].only_new is False


# ---- mailer ----


def _smtp_settings(**overrides) -> AppSettings:
    values = dict(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="mailer",
        smtp_password="secret",
        smtp_from="jobs@example.com",
    )
    values.update(overrides)
    return AppSettings(**values)


def test_render_digest_html_escapes_fields():
    index = _scored_index({"a": 0.85})
    posting = index.postings["a"]
    posting.title = "<script>alert(1)</script>"
    html_body = render_digest_html([posting], DigestOptions(source="scan"))
    assert "<script>" not in html_body
    assert "&lt;script&gt;" in html_body
    assert "85%" in html_body
    assert posting.url in html_body


def test_render_empty_digest_and_failure():
    assert "No new job matches" in render_digest_html([], DigestOptions())
    assert "&lt;boom&gt;" in render_failure_html("<boom>")


def test_notifier_without_smtp_raises():
    notifier = SmtpNotifier(AppSettings(smtp_host="", smtp_user="", smtp_password=""))
    assert notifier.is_configured() is False
    with pytest.raises(NotifierFailure, match="smtp_host"):
        asyncio.run(notifier.send("me@example.com", [], DigestOptions()))


def test_notifier_sends_via_starttls():
    notifier = SmtpNotifier(_smtp_settings())
    with patch("scanpilot.notify.mailer.smtplib.SMTP") as smtp_cls:
        asyncio.run(notifier.send("me@example.com", [], DigestOptions(subject="Hi")))

    smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=30)
    smtp = smtp_cls.return_value
    smtp.starttls.assert_called_once()
    smtp.login.assert_called_once_with("mailer", "secret")
    args = smtp.sendmail.call_args.args
    assert args[0] == "jobs@example.com"
    assert args[1] == ["me@example.com"]
    assert "Subject: Hi" in args[2]


def test_notifier_wraps_smtp_errors():
    notifier = SmtpNotifier(_smtp_settings(smtp_secure=True))
    with patch("scanpilot.notify.mailer.smtplib.SMTP_SSL") as ssl_cls:
        ssl_cls.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad creds")
        with pytest.raises(NotifierFailure, match="SMTP delivery failed"):
            asyncio.run(notifier.send_failure("me@example.com", "scan died"))
    ssl_cls.return_value.starttls.assert_not_called()
