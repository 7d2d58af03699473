from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from PySide6.QtCore import QThreadPool

from message_downloader.core.cancellation import CancellationToken
from message_downloader.core.discord_client import authenticate, validate_token_format
from message_downloader.core.events import LoginFailed
from message_downloader.core.mailbox import ResultMailbox
from message_downloader.core.models import Session
from message_downloader.workers.tasks import (
    ChannelListTask,
    DmListTask,
    DownloadTask,
    GuildListTask,
    LoginTask,
)

MAX_WORKERS = 8
INVALID_TOKEN_REASON = "Invalid token format"


@dataclass
class DownloadHandle:
    download_id: int
    channel_id: str
    token: CancellationToken = field(default_factory=CancellationToken)

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self) -> None:
        self.token.cancel()


class TaskSupervisor:
    """Turns each intent into one background task wired to the mailbox.

    ``pool`` is anything with a ``start(runnable)`` method; by default a
    private :class:`QThreadPool`. Only downloads hand back a handle.
    """

    def __init__(
        self,
        mailbox: ResultMailbox,
        *,
        connector: Callable[[str], Session] = authenticate,
        pool: Any | None = None,
    ):
        self._mailbox = mailbox
        self._connector = connector
        if pool is None:
            pool = QThreadPool()
            pool.setMaxThreadCount(MAX_WORKERS)
        self._pool = pool
        self._login_ids = itertools.count(1)
        self._download_ids = itertools.count(1)
        self._live_handles: list[DownloadHandle] = []
        self._lock = threading.Lock()
        self._logger = logging.getLogger("msgdownloader.supervisor")

    def login(self, token: str) -> int:
        """Start one login attempt and return its id.

        Every result of the attempt, including a synchronous format reject,
        reaches the mailbox tagged with that id.
        """

        login_id = next(self._login_ids)
        if not validate_token_format(token):
            self._logger.warning("Rejected malformed token before login %s.", login_id)
            self._mailbox.send(LoginFailed(INVALID_TOKEN_REASON, login_id))
            return login_id
        self._pool.start(LoginTask(self._mailbox, token, login_id, self._connector, self._on_login_succeeded))
        return login_id

    def _on_login_succeeded(self, session: Session) -> None:
        # Runs on the login worker; the two lists race and report independently.
        self.list_guilds(session)
        self.list_direct_messages(session)

    def list_guilds(self, session: Session) -> None:
        self._pool.start(GuildListTask(self._mailbox, session))

    def list_direct_messages(self, session: Session) -> None:
        self._pool.start(DmListTask(self._mailbox, session))

    def list_channels(self, session: Session, guild_id: str) -> None:
        self._pool.start(ChannelListTask(self._mailbox, session, guild_id))

    @property
    def live_downloads(self) -> tuple[DownloadHandle, ...]:
        with self._lock:
            return tuple(self._live_handles)

    def download_messages(self, session: Session, channel_id: str) -> DownloadHandle:
        handle = DownloadHandle(download_id=next(self._download_ids), channel_id=channel_id)
        with self._lock:
            self._live_handles.append(handle)
        task = DownloadTask(
            self._mailbox,
            session,
            channel_id,
            handle.download_id,
            handle.token,
            on_done=lambda: self._release(handle),
        )
        self._pool.start(task)
        return handle

    def _release(self, handle: DownloadHandle) -> None:
        with self._lock:
            self._live_handles = [h for h in self._live_handles if h is not handle]

    def shutdown(self, timeout_ms: int = 3000) -> None:
        with self._lock:
            handles, self._live_handles = self._live_handles, []
        for handle in handles:
            handle.cancel()
        wait = getattr(self._pool, "waitForDone", None)
        if callable(wait) and not wait(timeout_ms):
            self._logger.warning("Background tasks still running after %s ms.", timeout_ms)
