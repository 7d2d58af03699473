from __future__ import annotations


class DiscordAPIError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(DiscordAPIError):
    """Token is malformed or was rejected by the remote service."""


class TransportError(DiscordAPIError):
    """Network, HTTP or payload failure while talking to the remote service."""


class ProtocolViolation(RuntimeError):
    """Local misuse of the orchestrator, e.g. starting a second download."""


class ExportError(RuntimeError):
    pass
