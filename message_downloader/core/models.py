from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

CHANNEL_TYPE_TEXT = 0
CHANNEL_TYPE_CATEGORY = 4
CHANNEL_TYPE_NEWS = 5
CHANNEL_TYPES_TEXT_BASED = {CHANNEL_TYPE_TEXT, CHANNEL_TYPE_NEWS}

NOTICE_INFO = "info"
NOTICE_SUCCESS = "success"
NOTICE_WARNING = "warning"
NOTICE_ERROR = "error"


@dataclass(frozen=True)
class Guild:
    id: str
    name: str
    icon_hash: str | None = None


@dataclass(frozen=True)
class DirectChannel:
    id: str
    name: str
    is_group: bool = False

    @property
    def label(self) -> str:
        if self.is_group:
            return f"Groupchat with {self.name}"
        return self.name


@dataclass(frozen=True)
class Channel:
    id: str
    name: str
    kind: int
    position: int = 0
    parent_id: str | None = None

    @property
    def is_text_based(self) -> bool:
        return self.kind in CHANNEL_TYPES_TEXT_BASED

    @property
    def is_category(self) -> bool:
        return self.kind == CHANNEL_TYPE_CATEGORY


@dataclass(frozen=True)
class Message:
    id: str
    author_name: str
    content: str
    timestamp: str
    channel_id: str = ""
    author_id: str = ""
    edited_timestamp: str | None = None
    attachments: tuple[str, ...] = ()
    pinned: bool = False


@dataclass(frozen=True)
class Session:
    """Authenticated client handle plus the identity it was issued for.

    ``client`` is shared read-only by every background task spawned for this
    session; the handle is responsible for its own thread safety.
    """

    client: Any = field(repr=False)
    display_name: str
    user_id: str = ""


@dataclass(frozen=True)
class Notice:
    level: str
    text: str
