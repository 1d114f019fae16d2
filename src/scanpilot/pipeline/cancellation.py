"""Cooperative cancellation token."""

from __future__ import annotations


class CancellationToken:
    """A flag polled at search-target and deep-scan job boundaries.

    Non-preemptive: setting it never interrupts a fetch or scoring call that
    is already in flight; the pipeline simply stops starting new work.
    """

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
