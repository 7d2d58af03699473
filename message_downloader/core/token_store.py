"""Remembered Discord token, kept in the OS keychain through ``keyring``."""

from __future__ import annotations

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from message_downloader.core.paths import APP_NAME

_USERNAME = "discord-token"


class TokenStoreError(RuntimeError):
    pass


def keyring_available() -> tuple[bool, str | None]:
    try:
        backend = keyring.get_keyring()
    except KeyringError as exc:
        return False, str(exc)
    priority = getattr(backend, "priority", 0)
    if priority is not None and priority <= 0:
        return False, f"No secure keyring backend ({type(backend).__name__})."
    return True, None


def load_token() -> str | None:
    try:
        return keyring.get_password(APP_NAME, _USERNAME)
    except KeyringError as exc:
        raise TokenStoreError(str(exc)) from exc


def save_token(token: str) -> None:
    try:
        keyring.set_password(APP_NAME, _USERNAME, token)
    except KeyringError as exc:
        raise TokenStoreError(str(exc)) from exc


def delete_token() -> None:
    try:
        keyring.delete_password(APP_NAME, _USERNAME)
    except PasswordDeleteError:
        return
    except KeyringError as exc:
        raise TokenStoreError(str(exc)) from exc
