"""Result events carried from background tasks to the orchestrator.

Every event is immutable and may carry a tag naming the work that
produced it, so the orchestrator can tell late results apart from current
ones:

* ``login_id`` ties a login result to one ``connect`` attempt.
* ``session`` ties a list result or failure to the session it ran on.
* ``download_id`` ties download results to one download task.

An untagged event counts as belonging to the current attempt, session or
download.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from message_downloader.core.models import Channel, DirectChannel, Guild, Message, Session


@dataclass(frozen=True)
class LoginSucceeded:
    session: Session
    login_id: int | None = None


@dataclass(frozen=True)
class LoginFailed:
    reason: str
    login_id: int | None = None


@dataclass(frozen=True)
class GuildsListed:
    guilds: tuple[Guild, ...]
    session: Session | None = field(default=None, compare=False)


@dataclass(frozen=True)
class DmsListed:
    channels: tuple[DirectChannel, ...]
    session: Session | None = field(default=None, compare=False)


@dataclass(frozen=True)
class ChannelsListed:
    guild_id: str
    channels: tuple[Channel, ...]
    session: Session | None = field(default=None, compare=False)


@dataclass(frozen=True)
class MessageReceived:
    message: Message
    download_id: int | None = None


@dataclass(frozen=True)
class DownloadFinished:
    download_id: int | None = None


@dataclass(frozen=True)
class OperationFailed:
    reason: str
    download_id: int | None = None
    session: Session | None = field(default=None, compare=False)


Event = Union[
    LoginSucceeded,
    LoginFailed,
    GuildsListed,
    DmsListed,
    ChannelsListed,
    MessageReceived,
    DownloadFinished,
    OperationFailed,
]
