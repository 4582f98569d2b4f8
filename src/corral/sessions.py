"""
Session discovery and command aggregation.

Claude Code keeps one JSONL transcript per session under
~/.claude/projects/<encoded-path>/. Each entry carries the session id, the
git branch and the project's cwd. We use them to find which projects were
active recently, then read each project's .claude/settings*.json for the
permissions it granted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import structlog

log = structlog.get_logger()

UNKNOWN_BRANCH = "unknown"

# Path-specific grants never generalize across projects
_SKIPPED_PREFIXES = ("Read(", "Write(", "Edit(")

PROJECT_SETTINGS_FILES = ("settings.json", "settings.local.json")


@dataclass
class SessionInfo:
    id: str
    branch: str
    last_activity: datetime


@dataclass
class ProjectInfo:
    path: str
    sessions: list[SessionInfo] = field(default_factory=list)

    @property
    def branches(self) -> list[str]:
        """Distinct branches, in the order they were first seen."""
        return list(dict.fromkeys(s.branch for s in self.sessions))

    @property
    def worktree_count(self) -> int:
        return len(self.branches)

    @property
    def last_activity(self) -> datetime | None:
        return max((s.last_activity for s in self.sessions), default=None)


@dataclass
class CommandInfo:
    command: str
    projects: list[str]


@dataclass
class AggregatedCommands:
    allowed: list[CommandInfo] = field(default_factory=list)
    denied: list[CommandInfo] = field(default_factory=list)


# === Discovery ===


def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_session_file(path: Path) -> tuple[SessionInfo, str] | None:
    """Extract (session, project path) from a transcript, or None."""
    session_id = branch = project_path = ""
    last_activity: datetime | None = None

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        log.warning("session_unreadable", path=str(path), error=str(e))
        return None

    for line in lines:
        if not line.strip():
            continue
        try:
            entry: Any = json.loads(line)
        except json.JSONDecodeError:
            continue  # malformed line
        if not isinstance(entry, dict):
            continue
        session_id = session_id or entry.get("sessionId") or ""
        branch = branch or entry.get("gitBranch") or ""
        project_path = project_path or entry.get("cwd") or ""
        stamp = entry.get("timestamp")
        if stamp:
            last_activity = parse_timestamp(stamp) or last_activity

    if not session_id or not project_path or last_activity is None:
        return None
    return SessionInfo(session_id, branch or UNKNOWN_BRANCH, last_activity), project_path


def discover_sessions(projects_dir: Path, filter_date: datetime) -> dict[str, ProjectInfo]:
    """Find sessions active since filter_date, keyed by project path."""
    projects: dict[str, ProjectInfo] = {}
    if not projects_dir.is_dir():
        return projects

    for project_dir in sorted(projects_dir.iterdir()):
        if not project_dir.is_dir():
            continue
        for session_file in sorted(project_dir.glob("*.jsonl")):
            parsed = parse_session_file(session_file)
            if parsed is None:
                continue
            session, project_path = parsed
            if session.last_activity < filter_date:
                continue
            projects.setdefault(project_path, ProjectInfo(project_path)).sessions.append(session)

    return projects


def get_filter_date(
    last_run: datetime | None, lookback_days: int = 7, now: datetime | None = None
) -> datetime:
    """Sessions older than this are skipped: the later of last run and the lookback."""
    now = now or datetime.now(timezone.utc)
    lookback = now - timedelta(days=lookback_days)
    if last_run is None:
        return lookback
    if last_run.tzinfo is None:
        last_run = last_run.replace(tzinfo=timezone.utc)
    return max(last_run, lookback)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def time_ago(then: datetime, now: datetime) -> str:
    minutes = int((now - then).total_seconds() // 60)
    hours, days = minutes // 60, minutes // (60 * 24)
    if days > 0:
        return f"{_plural(days, 'day')} ago"
    if hours > 0:
        return f"{_plural(hours, 'hour')} ago"
    if minutes > 0:
        return f"{_plural(minutes, 'minute')} ago"
    return "just now"


def format_sessions(projects: dict[str, ProjectInfo], now: datetime | None = None) -> str:
    """Human-readable listing of discovered projects."""
    if not projects:
        return "No active Claude Code sessions found."
    now = now or datetime.now(timezone.utc)

    lines = ["Active Claude Code Sessions", "=" * 54, ""]
    for project in projects.values():
        lines.append(project.path)
        lines.append(f"   Branches: {', '.join(project.branches)}")
        lines.append(f"   Worktrees: {project.worktree_count}")
        lines.append(f"   Sessions: {len(project.sessions)}")
        if project.last_activity is not None:
            lines.append(f"   Last active: {time_ago(project.last_activity, now)}")
        lines.append("")

    sessions = sum(len(p.sessions) for p in projects.values())
    worktrees = sum(p.worktree_count for p in projects.values())
    lines.append(
        f"Total: {_plural(len(projects), 'project')}, "
        f"{_plural(worktrees, 'worktree')}, {_plural(sessions, 'session')}"
    )
    return "\n".join(lines)


# === Aggregation ===


def should_skip(command: str) -> bool:
    return command.startswith(_SKIPPED_PREFIXES)


def read_project_permissions(project_path: Path) -> tuple[list[str], list[str]]:
    """Merge allow/deny lists from a project's shared and local settings."""
    allow: list[str] = []
    deny: list[str] = []
    for name in PROJECT_SETTINGS_FILES:
        path = project_path / ".claude" / name
        if not path.is_file():
            continue
        try:
            settings = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            log.warning("project_settings_unreadable", path=str(path), error=str(e))
            continue
        permissions = settings.get("permissions") if isinstance(settings, dict) else None
        if not isinstance(permissions, dict):
            continue
        allow.extend(c for c in permissions.get("allow") or [] if isinstance(c, str))
        deny.extend(c for c in permissions.get("deny") or [] if isinstance(c, str))
    return allow, deny


def _collect(into: dict[str, list[str]], commands: list[str], project: str) -> None:
    for command in commands:
        if should_skip(command):
            continue
        seen = into.setdefault(command, [])
        if project not in seen:
            seen.append(project)


def aggregate_commands(projects: dict[str, ProjectInfo]) -> AggregatedCommands:
    """Union of every project's grants, remembering which projects had each."""
    allowed: dict[str, list[str]] = {}
    denied: dict[str, list[str]] = {}
    for project in projects.values():
        allow, deny = read_project_permissions(Path(project.path))
        _collect(allowed, allow, project.path)
        _collect(denied, deny, project.path)
    return AggregatedCommands(
        allowed=[CommandInfo(c, p) for c, p in allowed.items()],
        denied=[CommandInfo(c, p) for c, p in denied.items()],
    )
