from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass

from platformdirs import user_documents_dir, user_log_dir

APP_NAME = "MessageDownloader"


@dataclass(frozen=True)
class DefaultPaths:
    export_root: str
    logs_dir: str
    export_fallback_used: bool = False
    logs_fallback_used: bool = False
    warnings: tuple[str, ...] = ()


def ensure_writable_directory(path: str) -> tuple[bool, str | None]:
    """Create *path* if needed and prove it accepts a file write."""

    try:
        os.makedirs(path, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=path, prefix=".write_test_", delete=True):
            pass
    except OSError as exc:
        return False, f"{path}: {exc.strerror or exc}"
    return True, None


def _home_fallback(*parts: str) -> str:
    return os.path.join(os.path.expanduser("~"), f".{APP_NAME.lower()}", *parts)


def resolve_default_paths() -> DefaultPaths:
    warnings: list[str] = []

    export_root = os.path.join(user_documents_dir(), APP_NAME)
    export_fallback = False
    ok, error = ensure_writable_directory(export_root)
    if not ok:
        warnings.append(f"Default export folder unavailable ({error}); using home fallback.")
        export_root = _home_fallback("exports")
        export_fallback = True

    logs_dir = user_log_dir(APP_NAME, appauthor=False)
    logs_fallback = False
    ok, error = ensure_writable_directory(logs_dir)
    if not ok:
        warnings.append(f"Default logs folder unavailable ({error}); using home fallback.")
        logs_dir = _home_fallback("logs")
        logs_fallback = True

    return DefaultPaths(
        export_root=export_root,
        logs_dir=logs_dir,
        export_fallback_used=export_fallback,
        logs_fallback_used=logs_fallback,
        warnings=tuple(warnings),
    )
