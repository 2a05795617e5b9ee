"""Cooperative cancellation token for a single run."""

from __future__ import annotations

from auditomatic.types import AuditomaticError


class RunCancelledError(AuditomaticError):
    """Raised by :meth:`CancellationToken.raise_if_cancelled` once a run is stopped."""


class CancellationToken:
    """Token checked cooperatively by the admission loop and task launches.

    The scheduler creates one token per run. :meth:`cancel` never interrupts
    a provider call that is already under way; it only stops new work from
    being admitted.
    """

    __slots__ = ("_cancelled", "_reason")

    def __init__(self) -> None:
        self._cancelled = False
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._cancelled

    @property
    def reason(self) -> str:
        """Reason given to the first :meth:`cancel` call (empty if none)."""
        return self._reason

    def cancel(self, reason: str = "") -> None:
        """Request cancellation. Later calls keep the first reason."""
        if not self._cancelled:
            self._reason = reason
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        """Raise :class:`RunCancelledError` if cancellation was requested."""
        if self._cancelled:
            raise RunCancelledError(self._reason or "Run cancelled")

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"
