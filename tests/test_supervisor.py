from __future__ import annotations

from PySide6.QtCore import QThreadPool

from message_downloader.core.errors import TransportError
from message_downloader.core.events import (
    ChannelsListed,
    DmsListed,
    DownloadFinished,
    GuildsListed,
    LoginFailed,
    LoginSucceeded,
    MessageReceived,
    OperationFailed,
)
from message_downloader.core.models import Session
from message_downloader.workers.supervisor import INVALID_TOKEN_REASON, TaskSupervisor

from conftest import VALID_TOKEN, FakeClient, make_connector, make_message


def _session(client: FakeClient) -> Session:
    return Session(client=client, display_name="tester")


def test_malformed_token_is_rejected_without_spawning(mailbox, inline_pool, fake_client) -> None:
    supervisor = TaskSupervisor(mailbox, connector=make_connector(fake_client), pool=inline_pool)

    login_id = supervisor.login("bad")

    assert inline_pool.started == []
    assert mailbox.try_drain_all() == [LoginFailed(INVALID_TOKEN_REASON, login_id)]


def test_login_success_fans_out_into_guild_and_dm_lists(mailbox, inline_pool, fake_client) -> None:
    supervisor = TaskSupervisor(mailbox, connector=make_connector(fake_client), pool=inline_pool)

    login_id = supervisor.login(VALID_TOKEN)

    events = mailbox.try_drain_all()
    assert isinstance(events[0], LoginSucceeded)
    assert events[0].login_id == login_id
    assert all(e.session is events[0].session for e in events[1:])
    assert events[0].session.display_name == "tester"
    assert {type(e) for e in events[1:]} == {GuildsListed, DmsListed}
    assert len(inline_pool.started) == 3


def test_login_rejected_by_remote_reports_login_failed(mailbox, inline_pool, fake_client) -> None:
    supervisor = TaskSupervisor(mailbox, connector=make_connector(fake_client), pool=inline_pool)

    supervisor.login("a.b.c")

    events = mailbox.try_drain_all()
    assert len(events) == 1
    assert isinstance(events[0], LoginFailed)
    assert "Unauthorized" in events[0].reason


def test_each_login_attempt_gets_its_own_id(mailbox, inline_pool, fake_client) -> None:
    supervisor = TaskSupervisor(mailbox, connector=make_connector(fake_client), pool=inline_pool)

    rejected = supervisor.login("bad")
    refused = supervisor.login("a.b.c")
    accepted = supervisor.login(VALID_TOKEN)

    events = mailbox.try_drain_all()
    assert len({rejected, refused, accepted}) == 3
    assert [e.login_id for e in events if isinstance(e, (LoginFailed, LoginSucceeded))] == [
        rejected,
        refused,
        accepted,
    ]


def test_list_failures_become_operation_failed(mailbox, inline_pool) -> None:
    client = FakeClient(list_error=TransportError("Network error: ConnectionError"))
    supervisor = TaskSupervisor(mailbox, pool=inline_pool)

    session = _session(client)
    supervisor.list_guilds(session)
    supervisor.list_direct_messages(session)
    supervisor.list_channels(session, "G1")

    events = mailbox.try_drain_all()
    assert [type(e) for e in events] == [OperationFailed] * 3
    assert all(e.download_id is None for e in events)
    assert all(e.session is session for e in events)


def test_list_channels_reports_guild_and_position_order(mailbox, inline_pool, fake_client) -> None:
    supervisor = TaskSupervisor(mailbox, pool=inline_pool)

    supervisor.list_channels(_session(fake_client), "G1")

    [event] = mailbox.try_drain_all()
    assert isinstance(event, ChannelsListed)
    assert event.guild_id == "G1"
    assert [c.id for c in event.channels] == ["cat", "c1", "c2"]


def test_download_emits_one_event_per_message_then_finishes(mailbox, inline_pool) -> None:
    pages = [[make_message(i) for i in range(0, 3)], [make_message(i) for i in range(3, 5)]]
    client = FakeClient(pages=pages)
    supervisor = TaskSupervisor(mailbox, pool=inline_pool)

    handle = supervisor.download_messages(_session(client), "C1")

    events = mailbox.try_drain_all()
    assert [e.message for e in events[:-1]] == pages[0] + pages[1]
    assert all(e.download_id == handle.download_id for e in events)
    assert events[-1] == DownloadFinished(handle.download_id)
    assert client.fetch_calls == [("C1", None), ("C1", pages[0][-1].id)]


def test_download_stops_at_first_failed_page(mailbox, inline_pool) -> None:
    pages = [[make_message(0), make_message(1)], [make_message(2)], [make_message(3)]]
    client = FakeClient(pages=pages, fail_on_page=1)
    supervisor = TaskSupervisor(mailbox, pool=inline_pool)

    handle = supervisor.download_messages(_session(client), "C1")

    events = mailbox.try_drain_all()
    assert [type(e) for e in events] == [MessageReceived, MessageReceived, OperationFailed]
    assert events[-1].download_id == handle.download_id
    assert len(client.fetch_calls) == 2


def test_cancel_before_first_page_is_silent(mailbox, deferred_pool, fake_client) -> None:
    supervisor = TaskSupervisor(mailbox, pool=deferred_pool)

    handle = supervisor.download_messages(_session(fake_client), "C1")
    handle.cancel()
    deferred_pool.run_all()

    assert handle.cancelled
    assert fake_client.fetch_calls == []
    assert mailbox.try_drain_all() == []


def test_cancel_during_page_request_drops_page_and_stops(mailbox, deferred_pool) -> None:
    pages = [[make_message(0)], [make_message(1)], [make_message(2)]]
    client = FakeClient(pages=pages)
    supervisor = TaskSupervisor(mailbox, pool=deferred_pool)
    handle = supervisor.download_messages(_session(client), "C1")

    def cancel_on_second_page(page_index: int) -> None:
        if page_index == 1:
            handle.cancel()

    client.on_fetch = cancel_on_second_page
    deferred_pool.run_all()

    events = mailbox.try_drain_all()
    assert [e.message for e in events] == [pages[0][0]]
    assert len(client.fetch_calls) == 2


def test_failure_after_cancel_stays_silent(mailbox, deferred_pool) -> None:
    client = FakeClient(pages=[[make_message(0)]], fail_on_page=0)
    supervisor = TaskSupervisor(mailbox, pool=deferred_pool)
    handle = supervisor.download_messages(_session(client), "C1")
    client.on_fetch = lambda page_index: handle.cancel()

    deferred_pool.run_all()

    assert mailbox.try_drain_all() == []


def test_download_ids_increase_and_shutdown_cancels_live_downloads(mailbox, deferred_pool, fake_client) -> None:
    supervisor = TaskSupervisor(mailbox, pool=deferred_pool)

    first = supervisor.download_messages(_session(fake_client), "C1")
    second = supervisor.download_messages(_session(fake_client), "C2")
    supervisor.shutdown()

    assert second.download_id > first.download_id
    assert first.cancelled and second.cancelled


def test_tasks_run_on_a_real_thread_pool(mailbox) -> None:
    pages = [[make_message(i) for i in range(3)], [make_message(i) for i in range(3, 6)]]
    client = FakeClient(pages=pages)
    pool = QThreadPool()
    supervisor = TaskSupervisor(mailbox, connector=make_connector(client), pool=pool)

    supervisor.login(VALID_TOKEN)
    handle = supervisor.download_messages(_session(client), "C1")
    assert pool.waitForDone(5000)

    events = mailbox.try_drain_all()
    downloads = [e for e in events if isinstance(e, (MessageReceived, DownloadFinished))]
    assert [e.message for e in downloads[:-1]] == pages[0] + pages[1]
    assert downloads[-1] == DownloadFinished(handle.download_id)
    assert {type(e) for e in events} >= {LoginSucceeded, GuildsListed, DmsListed}


def test_finished_downloads_are_released(mailbox, inline_pool, fake_client) -> None:
    supervisor = TaskSupervisor(mailbox, pool=inline_pool)

    supervisor.download_messages(_session(fake_client), "C1")
    supervisor.download_messages(_session(FakeClient(fail_on_page=0)), "C2")

    assert supervisor.live_downloads == ()


def test_download_is_live_until_its_task_stops(mailbox, deferred_pool, fake_client) -> None:
    supervisor = TaskSupervisor(mailbox, pool=deferred_pool)

    first = supervisor.download_messages(_session(fake_client), "C1")
    first.cancel()
    second = supervisor.download_messages(_session(fake_client), "C2")
    assert supervisor.live_downloads == (first, second)

    deferred_pool.run_all()

    assert supervisor.live_downloads == ()
