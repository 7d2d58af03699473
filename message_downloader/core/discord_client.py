from __future__ import annotations

import logging
import re
import threading
from typing import Any, Callable

import requests

from message_downloader.core.errors import AuthError, DiscordAPIError, TransportError
from message_downloader.core.models import Channel, DirectChannel, Guild, Message, Session

API_BASE = "https://discord.com/api/v9"
REQUEST_TIMEOUT_SECONDS = 15
MESSAGES_PAGE_SIZE = 100
USER_AGENT = "MessageDownloader/1.0 (+https://discord.com)"

DM_TYPE_GROUP = 3

_TOKEN_SEGMENT = re.compile(r"^[A-Za-z0-9_\-]+$")


def validate_token_format(token: str) -> bool:
    if not token or any(ch.isspace() for ch in token):
        return False
    segments = token.split(".")
    if len(segments) != 3:
        return False
    return all(segment and _TOKEN_SEGMENT.match(segment) for segment in segments)


def _user_label(user: dict) -> str:
    return user.get("global_name") or user.get("username") or "Unknown"


def _parse_guild(raw: dict) -> Guild:
    return Guild(id=str(raw["id"]), name=raw.get("name") or "Unknown Server", icon_hash=raw.get("icon"))


def _parse_direct_channel(raw: dict) -> DirectChannel:
    recipients = raw.get("recipients") or []
    name = raw.get("name") or ", ".join(_user_label(r) for r in recipients) or "Direct Message"
    return DirectChannel(id=str(raw["id"]), name=name, is_group=raw.get("type") == DM_TYPE_GROUP)


def _parse_channel(raw: dict) -> Channel:
    parent_id = raw.get("parent_id")
    return Channel(
        id=str(raw["id"]),
        name=raw.get("name") or "channel",
        kind=int(raw.get("type", 0)),
        position=int(raw.get("position") or 0),
        parent_id=str(parent_id) if parent_id else None,
    )


def _parse_message(raw: dict) -> Message:
    author = raw.get("author") or {}
    return Message(
        id=str(raw["id"]),
        author_name=author.get("username") or "Unknown",
        content=raw.get("content") or "",
        timestamp=raw.get("timestamp") or "",
        channel_id=str(raw.get("channel_id") or ""),
        author_id=str(author.get("id") or ""),
        edited_timestamp=raw.get("edited_timestamp"),
        attachments=tuple(a.get("url", "") for a in raw.get("attachments") or ()),
        pinned=bool(raw.get("pinned", False)),
    )


class DiscordClient:
    """Blocking REST client for the handful of endpoints the downloader uses.

    One instance is shared by every worker task of a session. Each thread
    lazily gets its own :class:`requests.Session`, so concurrent calls never
    share a connection pool.
    """

    def __init__(
        self,
        token: str,
        *,
        session_factory: Callable[[], Any] = requests.Session,
        api_base: str = API_BASE,
        page_size: int = MESSAGES_PAGE_SIZE,
    ):
        self._token = token
        self._session_factory = session_factory
        self._api_base = api_base.rstrip("/")
        self._page_size = page_size
        self._local = threading.local()
        self._lock = threading.Lock()
        self._http_sessions: list[Any] = []
        self._closed = False
        self._logger = logging.getLogger("msgdownloader.discord")

    def _http(self) -> Any:
        http = getattr(self._local, "http", None)
        if http is None:
            http = self._session_factory()
            http.headers.update({"Authorization": self._token, "User-Agent": USER_AGENT})
            with self._lock:
                self._http_sessions.append(http)
            self._local.http = http
        return http

    def _get(self, path: str, params: dict | None = None) -> Any:
        if self._closed:
            raise TransportError("Client is closed.")
        url = f"{self._api_base}{path}"
        try:
            response = self._http().get(url, params=params, timeout=REQUEST_TIMEOUT_SECONDS)
        except requests.RequestException as exc:
            self._logger.warning("Request to %s failed: %s", path, exc.__class__.__name__)
            raise TransportError(f"Network error: {exc.__class__.__name__}") from exc

        status = response.status_code
        if status != 200:
            detail = self._error_detail(response)
            self._logger.warning("GET %s returned HTTP %s (%s)", path, status, detail)
            if status == 401:
                raise AuthError(f"Unauthorized: {detail}", status_code=status)
            if status == 403:
                raise TransportError(f"Missing access: {detail}", status_code=status)
            if status == 429:
                raise TransportError("Rate limited by Discord. Try again later.", status_code=status)
            raise TransportError(f"HTTP {status}: {detail}", status_code=status)

        try:
            return response.json()
        except ValueError as exc:
            raise TransportError("Invalid JSON in response.", status_code=status) from exc

    @staticmethod
    def _error_detail(response: Any) -> str:
        try:
            payload = response.json()
        except ValueError:
            return "no details"
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return "no details"

    def validate_token(self) -> dict:
        try:
            me = self._get("/users/@me")
        except TransportError as exc:
            # A token that may not read its own user is a rejected credential.
            if exc.status_code == 403:
                raise AuthError(f"Forbidden: {exc}", status_code=exc.status_code) from exc
            raise
        if not isinstance(me, dict) or "id" not in me:
            raise TransportError("Unexpected response for current user.")
        return me

    def list_guilds(self) -> list[Guild]:
        return [_parse_guild(raw) for raw in self._get("/users/@me/guilds")]

    def list_direct_channels(self) -> list[DirectChannel]:
        return [_parse_direct_channel(raw) for raw in self._get("/users/@me/channels")]

    def list_channels(self, guild_id: str) -> list[Channel]:
        channels = [_parse_channel(raw) for raw in self._get(f"/guilds/{guild_id}/channels")]
        return sorted(channels, key=lambda c: c.position)

    def fetch_messages_page(
        self, channel_id: str, cursor: str | None = None
    ) -> tuple[list[Message], str | None]:
        """Fetch one page of history, newest first.

        Returns the messages and the cursor for the next (older) page, or
        ``None`` once the history is exhausted.
        """

        params: dict[str, Any] = {"limit": self._page_size}
        if cursor:
            params["before"] = cursor
        raw_page = self._get(f"/channels/{channel_id}/messages", params)
        if not isinstance(raw_page, list):
            raise TransportError("Unexpected response for channel messages.")
        messages = [_parse_message(raw) for raw in raw_page]
        next_cursor = messages[-1].id if len(messages) >= self._page_size else None
        return messages, next_cursor

    def close(self) -> None:
        self._closed = True
        with self._lock:
            sessions, self._http_sessions = self._http_sessions, []
        for http in sessions:
            http.close()


def authenticate(token: str, *, client_factory: Callable[[str], DiscordClient] = DiscordClient) -> Session:
    if not validate_token_format(token):
        raise AuthError("Invalid token format")
    client = client_factory(token)
    try:
        me = client.validate_token()
    except DiscordAPIError:
        client.close()
        raise
    return Session(client=client, display_name=_user_label(me), user_id=str(me.get("id", "")))
