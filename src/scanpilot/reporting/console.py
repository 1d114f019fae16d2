"""Rich-powered console output."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from scanpilot.models import DigestResult, JobPosting
from scanpilot.pipeline.events import BatchFinished, JobFinished

_console = Console()


def print_banner() -> None:
    """Display the startup banner."""
    _console.print(
        Panel.fit(
            "[bold cyan]ScanPilot[/bold cyan]  —  Job Scan & Match Digest",
            border_style="cyan",
        )
    )


class ConsoleProgress:
    """Progress observer that prints one line per finished posting."""

    def job_started(self, posting: JobPosting, index: int, total: int) -> None:
        pass

    def job_finished(self, event: JobFinished) -> None:
        posting = event.posting
        if event.ok:
            style = "bold green" if (posting.match_score or 0) >= 0.7 else "yellow"
            outcome = f"{posting.match_score or 0:.2f}"
        else:
            style = "bold red"
            outcome = posting.scan_error.kind if posting.scan_error else "error"
        title = posting.title or "(untitled)"
        company = posting.company or "(unknown)"
        _console.print(
            f"  [{style}]{event.index:>4}/{event.total:<4}[/{style}]  "
            f"[{style}]{outcome:<12}[/{style}]  "
            f"{title}  @  {company}"
        )

    def batch_finished(self, event: BatchFinished) -> None:
        _console.print(
            f"  [dim]batch {event.batch_number}/{event.batch_count} "
            f"— {event.processed}/{event.total} done[/dim]"
        )


def print_status(status: dict[str, Any]) -> None:
    """Display the latest session and index summary."""
    session = status["session"]
    index = status["index"]

    table = Table(title="Scan Status", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Session", session.get("session_id") or "—")
    table.add_row("Status", session.get("status", "idle"))
    if session.get("rescan"):
        table.add_row("Rescan", "yes")
    table.add_row("Started", session.get("start_time") or "—")
    table.add_row("Ended", session.get("end_time") or "—")
    table.add_row("Sources scanned", str(len(session.get("scanned_sources") or [])))
    table.add_row("Listings found", str(session.get("total_found", 0)))
    progress = session.get("deep_scan_progress")
    if progress:
        table.add_row(
            "Deep scan",
            f"{progress['completed']} ok / {progress['errors']} failed / {progress['total']} total",
        )
    if session.get("error"):
        table.add_row("Error", f"[red]{session['error']}[/red]")
    for warning in session.get("warnings") or []:
        table.add_row("Warning", f"[yellow]{warning}[/yellow]")

    table.add_section()
    table.add_row("Total jobs", str(index["total"]))
    table.add_row("Scanned", str(index["scanned"]))
    table.add_row("Matched", str(index["matched"]))
    table.add_row("Failed", str(index["errors"]))
    table.add_row("Sent in digest", str(index["sent_in_digest"]))
    table.add_row("Last scan", index.get("last_scan_date") or "—")

    _console.print()
    _console.print(table)
    _console.print()


def print_failed_report(report: dict[str, Any]) -> None:
    """Display failed postings grouped by error kind."""
    if not report["total_failed"]:
        _console.print("[green]No failed postings.[/green]")
        return

    table = Table(title="Failed Postings", show_header=True, header_style="bold red")
    table.add_column("Kind", style="cyan")
    table.add_column("Title")
    table.add_column("Company")
    table.add_column("Error")
    for job in report["jobs"]:
        table.add_row(
            job["kind"],
            job["title"] or "(untitled)",
            job["company"] or "(unknown)",
            job["message"],
        )

    _console.print()
    _console.print(table)
    counts = ", ".join(f"{kind}: {n}" for kind, n in sorted(report["by_kind"].items()))
    _console.print(f"  [bold]{report['total_failed']}[/bold] failed ({counts})")
    _console.print()


def print_digest_result(result: DigestResult) -> None:
    if not result.success:
        _console.print(f"[bold red]Digest failed:[/bold red] {result.error}")
    elif not result.delivered:
        _console.print("[yellow]No matching postings — nothing sent.[/yellow]")
    else:
        _console.print(
            f"[bold green]Digest sent[/bold green] with {result.jobs_sent} posting(s); "
            f"{result.marked_as_sent} marked as sent."
        )


def print_reset(removed: int) -> None:
    _console.print(f"[bold]Job index reset[/bold] — {removed} posting(s) removed.")
