"""
Read and write the files Corral owns or touches.

- settings.json: the user's permission grants. Written with a timestamped
  backup of the previous version and an atomic replace.
- corral-state.json: when `collect` last ran.
- review documents: the JSON queue an operator works through.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from corral.core.errors import ReviewFileError, SettingsError
from corral.core.merge import MergeResult, merge_dispositions
from corral.core.models import ReviewQueue, review_queue_from_dict

log = structlog.get_logger()

BACKUP_SUFFIX = ".backup."


def _empty_settings() -> dict[str, Any]:
    return {"permissions": {"allow": [], "deny": [], "ask": []}}


def _atomic_write(path: Path, text: str) -> None:
    """Write text to path via a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


# === Permission settings ===


def read_settings(path: Path) -> dict[str, Any]:
    """Load settings.json, making sure permissions.allow exists.

    A missing file reads as empty settings. Anything unparseable raises
    SettingsError rather than being silently replaced.
    """
    if not path.exists():
        return _empty_settings()
    try:
        settings = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise SettingsError(f"Cannot read {path}: {e}") from e
    if not isinstance(settings, dict):
        raise SettingsError(f"{path}: expected a JSON object")

    permissions = settings.setdefault("permissions", {})
    if not isinstance(permissions, dict):
        raise SettingsError(f"{path}: 'permissions' must be an object")
    allow = permissions.setdefault("allow", [])
    if not isinstance(allow, list):
        raise SettingsError(f"{path}: 'permissions.allow' must be a list")
    return settings


def write_settings(path: Path, settings: dict[str, Any], now: datetime | None = None) -> Path | None:
    """Write settings.json, backing up the previous file first.

    Returns the backup path, or None if there was nothing to back up.
    """
    backup = None
    try:
        if path.exists():
            stamp = (now or datetime.now()).strftime("%Y-%m-%dT%H-%M-%S")
            backup = path.with_name(f"{path.name}{BACKUP_SUFFIX}{stamp}")
            shutil.copy2(path, backup)
        _atomic_write(path, _dump(settings))
    except OSError as e:
        raise SettingsError(f"Cannot write {path}: {e}") from e
    log.info("settings_written", path=str(path), backup=str(backup) if backup else None)
    return backup


@contextmanager
def edit_settings(path: Path) -> Iterator[dict[str, Any]]:
    """Yield settings for in-place edits; write back only if they changed."""
    settings = read_settings(path)
    before = json.dumps(settings, sort_keys=True)
    yield settings
    if json.dumps(settings, sort_keys=True) != before:
        write_settings(path, settings)


def apply_merge(path: Path, queue: ReviewQueue) -> MergeResult:
    """Add a committed queue's approvals to the allow-list in settings.json."""
    with edit_settings(path) as settings:
        allow = settings["permissions"]["allow"]
        result = merge_dispositions(queue, allow)
        allow.extend(result.added_patterns)
        allow.extend(result.added_commands)
    log.info(
        "merge_applied",
        patterns=len(result.added_patterns),
        commands=len(result.added_commands),
    )
    return result


# === Run state ===


@dataclass
class RunState:
    last_collect_run: datetime | None = None


def read_state(path: Path) -> RunState:
    """Read the run-state file. A missing or unreadable file means never run."""
    if not path.exists():
        return RunState()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        value = data.get("lastCollectRun") if isinstance(data, dict) else None
        return RunState(datetime.fromisoformat(value) if value else None)
    except (OSError, ValueError, TypeError) as e:
        log.warning("state_unreadable", path=str(path), error=str(e))
        return RunState()


def write_state(path: Path, state: RunState) -> None:
    last = state.last_collect_run.isoformat() if state.last_collect_run else None
    try:
        _atomic_write(path, _dump({"lastCollectRun": last}))
    except OSError as e:
        raise SettingsError(f"Cannot write {path}: {e}") from e


# === Review documents ===


def load_review(path: Path) -> ReviewQueue:
    """Load a review document. Raises ReviewFileError if it is unusable."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ReviewFileError(f"Review file not found: {path}") from None
    except (OSError, json.JSONDecodeError) as e:
        raise ReviewFileError(f"Cannot read review file {path}: {e}") from e
    return review_queue_from_dict(data, ReviewFileError)


def save_review(path: Path, queue: ReviewQueue) -> None:
    try:
        _atomic_write(path, _dump(queue.to_dict()))
    except OSError as e:
        raise ReviewFileError(f"Cannot write review file {path}: {e}") from e
