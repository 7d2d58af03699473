from __future__ import annotations

import dataclasses
import json
import os
import re
from typing import Iterable

from message_downloader.core.errors import ExportError
from message_downloader.core.models import Message

RECORD_SEPARATOR = "᎗" * 23

_UNSAFE_PATH_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def sanitize_path_segment(value: str, *, fallback: str = "channel") -> str:
    cleaned = _UNSAFE_PATH_CHARS.sub("_", value).strip().rstrip(".")
    return cleaned or fallback


def default_export_filename(channel_name: str, *, verbose: bool = False) -> str:
    name = sanitize_path_segment(channel_name)
    return f"{name} Messages Verbose.txt" if verbose else f"{name} Messages.txt"


def render_plain_text(messages: Iterable[Message]) -> str:
    parts: list[str] = []
    for message in messages:
        parts.append(f"{RECORD_SEPARATOR}\n")
        parts.append(f"{message.author_name}: {message.content} ({message.timestamp})")
        parts.append(f"\n{RECORD_SEPARATOR}\n")
    return "".join(parts)


def render_verbose(messages: Iterable[Message]) -> str:
    payload = [dataclasses.asdict(message) for message in messages]
    return json.dumps(payload, ensure_ascii=False, indent=2) + "\n"


def write_export(path: str, text: str) -> None:
    tmp = f"{path}.tmp"
    try:
        with open(tmp, "w", encoding="utf-8", newline="\n") as handle:
            handle.write(text)
        os.replace(tmp, path)
    except OSError as exc:
        try:
            if os.path.exists(tmp):
                os.remove(tmp)
        except OSError:
            pass
        raise ExportError(f"Could not write {path}: {exc.strerror or exc}") from exc
