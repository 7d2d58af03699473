"""Single-writer state machine behind the main window.

The window forwards user intents to :class:`Orchestrator` and calls
:meth:`Orchestrator.tick` once per frame. Background tasks never touch
this state; they only post events into the mailbox, which ``tick`` drains
on the GUI thread.
"""

from __future__ import annotations

import enum
import logging

from message_downloader.core.errors import ProtocolViolation
from message_downloader.core.events import (
    ChannelsListed,
    DmsListed,
    DownloadFinished,
    Event,
    GuildsListed,
    LoginFailed,
    LoginSucceeded,
    MessageReceived,
    OperationFailed,
)
from message_downloader.core.mailbox import ResultMailbox
from message_downloader.core.models import (
    NOTICE_ERROR,
    NOTICE_INFO,
    NOTICE_SUCCESS,
    Channel,
    DirectChannel,
    Guild,
    Message,
    Notice,
    Session,
)
from message_downloader.workers.supervisor import DownloadHandle, TaskSupervisor


class ConnectionStatus(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Orchestrator:
    def __init__(
        self,
        mailbox: ResultMailbox | None = None,
        supervisor: TaskSupervisor | None = None,
    ):
        self._mailbox = mailbox if mailbox is not None else ResultMailbox()
        self._supervisor = supervisor if supervisor is not None else TaskSupervisor(self._mailbox)
        self._logger = logging.getLogger("msgdownloader.orchestrator")

        self._session: Session | None = None
        self._pending_login_id: int | None = None
        self._guilds: tuple[Guild, ...] = ()
        self._direct_channels: tuple[DirectChannel, ...] = ()
        self._channels: tuple[Channel, ...] = ()
        self._active_guild_id: str | None = None
        self._selection: tuple[str, str] | None = None
        self._messages: list[Message] = []
        self._download: DownloadHandle | None = None
        self._notices: list[Notice] = []

    # -- read-only state -------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        if self._session is not None:
            return ConnectionStatus.CONNECTED
        if self._pending_login_id is not None:
            return ConnectionStatus.CONNECTING
        return ConnectionStatus.DISCONNECTED

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    @property
    def is_connecting(self) -> bool:
        return self._pending_login_id is not None

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def display_name(self) -> str:
        return self._session.display_name if self._session else ""

    @property
    def guilds(self) -> tuple[Guild, ...]:
        return self._guilds

    @property
    def direct_channels(self) -> tuple[DirectChannel, ...]:
        return self._direct_channels

    @property
    def channels(self) -> tuple[Channel, ...]:
        return self._channels

    @property
    def active_guild_id(self) -> str | None:
        return self._active_guild_id

    @property
    def selection(self) -> tuple[str, str] | None:
        return self._selection

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def message_count(self) -> int:
        return len(self._messages)

    @property
    def is_downloading(self) -> bool:
        return self._download is not None

    def take_notices(self) -> list[Notice]:
        notices, self._notices = self._notices, []
        return notices

    def _notify(self, level: str, text: str) -> None:
        self._notices.append(Notice(level, text))

    def _reject(self, message: str) -> bool:
        self._logger.debug("Ignored intent: %s", ProtocolViolation(message))
        return False

    # -- intents ---------------------------------------------------------

    def connect(self, token: str) -> bool:
        if self._session is not None or self._pending_login_id is not None:
            return self._reject("connect while connected or connecting")
        self._pending_login_id = self._supervisor.login(token)
        self._logger.info("Connect initiated (login %s).", self._pending_login_id)
        return True

    def disconnect(self) -> None:
        if self._session is None and self._pending_login_id is None:
            return
        self._cancel_active_download()
        session = self._session
        self._session = None
        self._pending_login_id = None
        self._selection = None
        self._messages.clear()
        self._guilds = ()
        self._direct_channels = ()
        self._channels = ()
        self._active_guild_id = None
        if session is not None:
            session.client.close()
        self._logger.info("Disconnected.")
        self._notify(NOTICE_INFO, "Disconnected")

    def load_channels(self, guild_id: str) -> bool:
        if self._session is None:
            return self._reject("load channels without a session")
        self._active_guild_id = guild_id
        self._channels = ()
        self._supervisor.list_channels(self._session, guild_id)
        return True

    def select_channel(self, channel_id: str, name: str) -> bool:
        if self._session is None:
            return self._reject("select channel without a session")
        self._cancel_active_download()
        self._messages.clear()
        self._selection = (channel_id, name)
        self._logger.debug("Channel selected: %s", channel_id)
        return True

    def clear_selection(self) -> None:
        self._cancel_active_download()
        self._messages.clear()
        self._selection = None

    def start_download(self) -> bool:
        if self._session is None or self._selection is None:
            return self._reject("start download without a session and selection")
        if self._download is not None:
            return self._reject("start download while one is active")
        self._messages.clear()
        channel_id, name = self._selection
        self._download = self._supervisor.download_messages(self._session, channel_id)
        self._logger.info("Download %s started for %s.", self._download.download_id, name)
        return True

    def cancel_download(self) -> bool:
        if self._download is None:
            return self._reject("cancel without an active download")
        self._cancel_active_download()
        self._notify(NOTICE_INFO, f"Canceled download with {len(self._messages)} messages")
        return True

    def _cancel_active_download(self) -> None:
        if self._download is None:
            return
        self._download.cancel()
        self._logger.info("Download %s cancelled.", self._download.download_id)
        self._download = None

    def shutdown(self) -> None:
        self.disconnect()
        self._mailbox.close()
        self._supervisor.shutdown()

    # -- drain step ------------------------------------------------------

    def tick(self) -> int:
        events = self._mailbox.try_drain_all()
        for event in events:
            self._apply(event)
        return len(events)

    def _is_active_download(self, download_id: int | None) -> bool:
        if self._download is None:
            return False
        return download_id is None or download_id == self._download.download_id

    def _is_pending_login(self, login_id: int | None) -> bool:
        if self._pending_login_id is None:
            return False
        return login_id is None or login_id == self._pending_login_id

    def _is_current_session(self, session: Session | None) -> bool:
        if self._session is None:
            return False
        return session is None or session is self._session

    def _apply(self, event: Event) -> None:
        if isinstance(event, MessageReceived):
            if self._is_active_download(event.download_id):
                self._messages.append(event.message)
        elif isinstance(event, LoginSucceeded):
            self._on_login_succeeded(event)
        elif isinstance(event, LoginFailed):
            if not self._is_pending_login(event.login_id):
                self._logger.debug("Ignored failure of stale login %s.", event.login_id)
                return
            self._pending_login_id = None
            self._logger.error("Login failed: %s", event.reason)
            self._notify(NOTICE_ERROR, f"Error: {event.reason}")
        elif isinstance(event, GuildsListed):
            if self._is_current_session(event.session):
                self._guilds = event.guilds
                self._notify(NOTICE_SUCCESS, f"Loaded: {len(event.guilds)} servers")
        elif isinstance(event, DmsListed):
            if self._is_current_session(event.session):
                self._direct_channels = event.channels
                self._notify(NOTICE_SUCCESS, f"Loaded: {len(event.channels)} DMs")
        elif isinstance(event, ChannelsListed):
            if self._is_current_session(event.session) and event.guild_id == self._active_guild_id:
                self._channels = event.channels
                self._notify(NOTICE_SUCCESS, f"Loaded: {len(event.channels)} channels")
        elif isinstance(event, DownloadFinished):
            if self._is_active_download(event.download_id):
                self._download = None
                self._logger.info("Download finished with %s messages.", len(self._messages))
                self._notify(NOTICE_SUCCESS, f"Finished downloading: {len(self._messages)} messages")
        elif isinstance(event, OperationFailed):
            self._on_operation_failed(event)
        else:  # pragma: no cover - closed union
            self._logger.warning("Unknown event %r", event)

    def _on_login_succeeded(self, event: LoginSucceeded) -> None:
        session = event.session
        if self._session is not None or not self._is_pending_login(event.login_id):
            # Only the stale attempt's own tasks hold this client; their events are dropped.
            self._logger.info("Discarded stale login %s for %s.", event.login_id, session.display_name)
            session.client.close()
            return
        self._pending_login_id = None
        self._session = session
        self._logger.info("Logged in as %s.", session.display_name)
        self._notify(NOTICE_SUCCESS, f"Logged in as: {session.display_name}")

    def _on_operation_failed(self, event: OperationFailed) -> None:
        if event.session is not None and event.session is not self._session:
            self._logger.debug("Ignored failure from a closed session: %s", event.reason)
            return
        if event.download_id is not None:
            if not self._is_active_download(event.download_id):
                self._logger.debug("Ignored failure of stale download %s.", event.download_id)
                return
            self._download = None
        self._logger.error("Operation failed: %s", event.reason)
        self._notify(NOTICE_ERROR, f"Error: {event.reason}")
