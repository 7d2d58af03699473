"""Shared fakes for the message downloader test suite.

Nothing here touches the network or needs a display: worker tasks run on
inline or deferred pools instead of a ``QThreadPool``.
"""

from __future__ import annotations

from typing import Callable

import pytest

from message_downloader.core.errors import AuthError, DiscordAPIError, TransportError
from message_downloader.core.mailbox import ResultMailbox
from message_downloader.core.models import Channel, DirectChannel, Guild, Message, Session
from message_downloader.workers.supervisor import DownloadHandle, TaskSupervisor

VALID_TOKEN = "MTIzNDU2Nzg5MDEyMzQ1Njc4.GhIjKl.abcdefghijklmnopqrstuvwxyz_-0123"


def make_message(index: int, *, channel_id: str = "C1") -> Message:
    return Message(
        id=str(1000 - index),
        author_name=f"user{index}",
        content=f"message {index}",
        timestamp=f"2024-01-01T00:00:{index:02d}+00:00",
        channel_id=channel_id,
    )


class InlinePool:
    """Runs every task synchronously on ``start``."""

    def __init__(self) -> None:
        self.started: list = []

    def start(self, runnable) -> None:
        self.started.append(runnable)
        runnable.run()


class DeferredPool:
    """Queues tasks until the test decides to run them."""

    def __init__(self) -> None:
        self.pending: list = []
        self.started: list = []

    def start(self, runnable) -> None:
        self.started.append(runnable)
        self.pending.append(runnable)

    def run_all(self) -> None:
        while self.pending:
            self.pending.pop(0).run()


class FakeClient:
    def __init__(
        self,
        *,
        guilds: list[Guild] | None = None,
        dms: list[DirectChannel] | None = None,
        channels: list[Channel] | None = None,
        pages: list[list[Message]] | None = None,
        fail_on_page: int | None = None,
        list_error: DiscordAPIError | None = None,
    ):
        self.guilds = guilds if guilds is not None else [Guild("G1", "Guild One"), Guild("G2", "Guild Two")]
        self.dms = dms if dms is not None else [DirectChannel("D1", "alice")]
        self.channels = channels if channels is not None else [
            Channel("c2", "random", 0, position=2),
            Channel("c1", "general", 0, position=1),
            Channel("cat", "Text Channels", 4, position=0),
        ]
        self.pages = pages if pages is not None else []
        self.fail_on_page = fail_on_page
        self.list_error = list_error
        self.fetch_calls: list[tuple[str, str | None]] = []
        self.on_fetch: Callable[[int], None] | None = None
        self.closed = False

    def _check_open(self) -> None:
        if self.closed:
            raise TransportError("Client is closed.")

    def list_guilds(self) -> list[Guild]:
        self._check_open()
        if self.list_error:
            raise self.list_error
        return list(self.guilds)

    def list_direct_channels(self) -> list[DirectChannel]:
        self._check_open()
        if self.list_error:
            raise self.list_error
        return list(self.dms)

    def list_channels(self, guild_id: str) -> list[Channel]:
        self._check_open()
        if self.list_error:
            raise self.list_error
        return list(self.channels)

    def fetch_messages_page(self, channel_id: str, cursor: str | None = None):
        page_index = len(self.fetch_calls)
        self.fetch_calls.append((channel_id, cursor))
        if self.on_fetch is not None:
            self.on_fetch(page_index)
        if self.fail_on_page is not None and page_index == self.fail_on_page:
            raise DiscordAPIError("HTTP 500: boom", status_code=500)
        if page_index >= len(self.pages):
            return [], None
        page = self.pages[page_index]
        next_cursor = page[-1].id if page_index + 1 < len(self.pages) else None
        return list(page), next_cursor

    def close(self) -> None:
        self.closed = True


def make_connector(client: FakeClient, *, display_name: str = "tester"):
    def connector(token: str) -> Session:
        if token != VALID_TOKEN:
            raise AuthError("Unauthorized: 401: Unauthorized", status_code=401)
        return Session(client=client, display_name=display_name, user_id="42")

    return connector


class RecordingSupervisor(TaskSupervisor):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.handles: list[DownloadHandle] = []

    def download_messages(self, session, channel_id):
        handle = super().download_messages(session, channel_id)
        self.handles.append(handle)
        return handle


@pytest.fixture
def mailbox() -> ResultMailbox:
    return ResultMailbox()


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient(pages=[[make_message(i) for i in range(3)]])


@pytest.fixture
def inline_pool() -> InlinePool:
    return InlinePool()


@pytest.fixture
def deferred_pool() -> DeferredPool:
    return DeferredPool()
