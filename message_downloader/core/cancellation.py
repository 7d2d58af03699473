"""Cooperative cancellation shared between the GUI thread and worker tasks."""

from __future__ import annotations

import threading


class CancellationToken:
    """Thin wrapper around :class:`threading.Event`.

    Workers poll :attr:`cancelled` at each page boundary; nothing is ever
    interrupted forcibly.
    """

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or *timeout* elapses; used by tests."""

        return self._event.wait(timeout)
