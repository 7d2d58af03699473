from __future__ import annotations

import threading

from message_downloader.core.events import DownloadFinished, OperationFailed
from message_downloader.core.mailbox import ResultMailbox


def test_drain_empty_mailbox_returns_nothing() -> None:
    mailbox = ResultMailbox()
    assert mailbox.try_drain_all() == []
    assert mailbox.try_drain_all() == []


def test_drain_returns_events_in_fifo_order() -> None:
    mailbox = ResultMailbox()
    events = [OperationFailed(str(i)) for i in range(5)] + [DownloadFinished()]
    for event in events:
        mailbox.send(event)

    assert len(mailbox) == 6
    assert mailbox.try_drain_all() == events
    assert mailbox.try_drain_all() == []


def test_send_after_close_is_dropped_silently() -> None:
    mailbox = ResultMailbox()
    mailbox.send(OperationFailed("before"))
    mailbox.close()

    mailbox.send(OperationFailed("after"))

    assert mailbox.closed
    assert mailbox.try_drain_all() == []


def test_order_within_each_producer_survives_concurrent_sends() -> None:
    mailbox = ResultMailbox()
    producers = 4
    per_producer = 500

    def produce(pid: int) -> None:
        for i in range(per_producer):
            mailbox.send(OperationFailed(f"{pid}:{i}"))

    threads = [threading.Thread(target=produce, args=(pid,)) for pid in range(producers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    drained = mailbox.try_drain_all()
    assert len(drained) == producers * per_producer
    seen: dict[str, list[int]] = {}
    for event in drained:
        pid, index = event.reason.split(":")
        seen.setdefault(pid, []).append(int(index))
    for indices in seen.values():
        assert indices == list(range(per_producer))
