from __future__ import annotations

import logging
import queue

from message_downloader.core.events import Event


class ResultMailbox:
    """Unbounded multi-producer, single-consumer queue of result events.

    Producers (worker threads) call :meth:`send`; the GUI thread calls
    :meth:`try_drain_all` once per frame. Events from a single producer keep
    their order. Neither side ever blocks.
    """

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[Event] = queue.SimpleQueue()
        self._closed = False
        self._logger = logging.getLogger("msgdownloader.mailbox")

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: Event) -> None:
        if self._closed:
            self._logger.debug("Dropped %s: consumer is gone.", type(event).__name__)
            return
        self._queue.put_nowait(event)

    def try_drain_all(self) -> list[Event]:
        events: list[Event] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        self._closed = True
        self.try_drain_all()

    def __len__(self) -> int:
        return self._queue.qsize()
