from __future__ import annotations

import logging
from typing import Callable

from PySide6.QtCore import QRunnable

from message_downloader.core.cancellation import CancellationToken
from message_downloader.core.errors import DiscordAPIError
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
from message_downloader.core.mailbox import ResultMailbox
from message_downloader.core.models import Session

_logger = logging.getLogger("msgdownloader.tasks")


class LoginTask(QRunnable):
    def __init__(
        self,
        mailbox: ResultMailbox,
        token: str,
        login_id: int,
        connector: Callable[[str], Session],
        on_success: Callable[[Session], None],
    ):
        super().__init__()
        self._mailbox = mailbox
        self._token = token
        self._login_id = login_id
        self._connector = connector
        self._on_success = on_success

    def run(self) -> None:
        try:
            _logger.info("Validating token (login %s).", self._login_id)
            session = self._connector(self._token)
        except DiscordAPIError as exc:
            _logger.error("Login %s failed: %s", self._login_id, exc)
            self._mailbox.send(LoginFailed(str(exc), self._login_id))
            return
        except Exception as exc:  # pragma: no cover - defensive
            _logger.exception("Unexpected login error.")
            self._mailbox.send(LoginFailed(f"Unexpected error: {exc}", self._login_id))
            return

        _logger.info("Logged in as %s.", session.display_name)
        self._mailbox.send(LoginSucceeded(session, self._login_id))
        self._on_success(session)


class GuildListTask(QRunnable):
    def __init__(self, mailbox: ResultMailbox, session: Session):
        super().__init__()
        self._mailbox = mailbox
        self._session = session

    def run(self) -> None:
        try:
            guilds = self._session.client.list_guilds()
        except DiscordAPIError as exc:
            _logger.error("Guild list failed: %s", exc)
            self._mailbox.send(OperationFailed(f"Could not load servers: {exc}", session=self._session))
            return
        except Exception as exc:  # pragma: no cover - defensive
            _logger.exception("Unexpected guild list error.")
            self._mailbox.send(OperationFailed(f"Unexpected error: {exc}", session=self._session))
            return
        _logger.info("Loaded %s guilds.", len(guilds))
        self._mailbox.send(GuildsListed(tuple(guilds), self._session))


class DmListTask(QRunnable):
    def __init__(self, mailbox: ResultMailbox, session: Session):
        super().__init__()
        self._mailbox = mailbox
        self._session = session

    def run(self) -> None:
        try:
            channels = self._session.client.list_direct_channels()
        except DiscordAPIError as exc:
            _logger.error("DM list failed: %s", exc)
            self._mailbox.send(OperationFailed(f"Could not load direct messages: {exc}", session=self._session))
            return
        except Exception as exc:  # pragma: no cover - defensive
            _logger.exception("Unexpected DM list error.")
            self._mailbox.send(OperationFailed(f"Unexpected error: {exc}", session=self._session))
            return
        _logger.info("Loaded %s DMs.", len(channels))
        self._mailbox.send(DmsListed(tuple(channels), self._session))


class ChannelListTask(QRunnable):
    def __init__(self, mailbox: ResultMailbox, session: Session, guild_id: str):
        super().__init__()
        self._mailbox = mailbox
        self._session = session
        self._guild_id = guild_id

    def run(self) -> None:
        try:
            channels = self._session.client.list_channels(self._guild_id)
        except DiscordAPIError as exc:
            _logger.warning("Failed to load channels for guild %s: %s", self._guild_id, exc)
            self._mailbox.send(OperationFailed(f"Could not load channels: {exc}", session=self._session))
            return
        except Exception as exc:  # pragma: no cover - defensive
            _logger.exception("Unexpected channel list error.")
            self._mailbox.send(OperationFailed(f"Unexpected error: {exc}", session=self._session))
            return
        ordered = sorted(channels, key=lambda c: c.position)
        self._mailbox.send(ChannelsListed(self._guild_id, tuple(ordered), self._session))


class DownloadTask(QRunnable):
    """Walks a channel's history page by page, one event per message.

    The first failed page ends the task with a single ``OperationFailed``.
    A cancelled task exits quietly at the next page boundary. ``on_done``
    runs once the task stops, whatever the reason.
    """

    def __init__(
        self,
        mailbox: ResultMailbox,
        session: Session,
        channel_id: str,
        download_id: int,
        token: CancellationToken,
        on_done: Callable[[], None] | None = None,
    ):
        super().__init__()
        self._mailbox = mailbox
        self._session = session
        self._channel_id = channel_id
        self._download_id = download_id
        self._token = token
        self._on_done = on_done

    def run(self) -> None:
        try:
            self._walk_history()
        finally:
            if self._on_done is not None:
                self._on_done()

    def _fail(self, reason: str) -> None:
        self._mailbox.send(OperationFailed(reason, self._download_id, self._session))

    def _walk_history(self) -> None:
        cursor: str | None = None
        received = 0
        pages = 0
        _logger.info("Download %s started for channel %s.", self._download_id, self._channel_id)
        while True:
            if self._token.cancelled:
                _logger.info("Download %s cancelled after %s messages.", self._download_id, received)
                return
            try:
                messages, cursor = self._session.client.fetch_messages_page(self._channel_id, cursor)
            except DiscordAPIError as exc:
                if self._token.cancelled:
                    return
                _logger.error("Download %s failed on page %s: %s", self._download_id, pages + 1, exc)
                self._fail(str(exc))
                return
            except Exception as exc:  # pragma: no cover - defensive
                _logger.exception("Unexpected download error.")
                self._fail(f"Unexpected error: {exc}")
                return
            if self._token.cancelled:
                _logger.info("Download %s cancelled after %s messages.", self._download_id, received)
                return

            pages += 1
            for message in messages:
                self._mailbox.send(MessageReceived(message, self._download_id))
            received += len(messages)
            _logger.debug("Download %s: page %s, %s messages so far.", self._download_id, pages, received)

            if cursor is None:
                break

        _logger.info("Download %s finished: %s messages in %s pages.", self._download_id, received, pages)
        self._mailbox.send(DownloadFinished(self._download_id))
