"""Corral configuration and logging."""

from __future__ import annotations

import logging
import os
import re
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from corral.core.patterns import compile_extra_patterns

USER_CONFIG = Path.home() / ".corral" / "config.toml"
PROJECT_CONFIG_NAME = ".corral.toml"
ENV_CONFIG = "CORRAL_CONFIG"


# Config scopes in priority order (lowest to highest)
SCOPE_USER = "user"
SCOPE_PROJECT = "project"
SCOPE_ENV = "env"


# Setting name -> expected type. Paths are given as strings in TOML.
_SETTINGS: dict[str, type] = {
    "claude_dir": Path,
    "review_dir": Path,
    "history_file": Path,
    "lookback_days": int,
    "model": str,
    "claude_cli": Path,
    "proposal_timeout": int,
    "log": Path,
    "log_full": bool,
}


@dataclass
class Config:
    """Resolved configuration."""

    claude_dir: Path = field(default_factory=lambda: Path.home() / ".claude")
    review_dir: Path = field(default_factory=Path.cwd)
    history_file: Path = field(
        default_factory=lambda: Path.cwd() / "history" / "command-approvals.md"
    )
    lookback_days: int = 7
    model: str = "haiku"
    claude_cli: Path | None = None
    proposal_timeout: int = 300
    log: Path | None = None  # None = warnings to stderr only
    log_full: bool = False  # include match lists in log events
    danger_patterns: list[str] = field(default_factory=list)
    """Extra denylist regexes, accumulated across all config files."""

    sources: list[str] = field(default_factory=list)
    """"scope:path" for every file that contributed, in load order."""

    @property
    def settings_file(self) -> Path:
        return self.claude_dir / "settings.json"

    @property
    def state_file(self) -> Path:
        return self.claude_dir / "corral-state.json"

    @property
    def projects_dir(self) -> Path:
        return self.claude_dir / "projects"

    def extra_danger(self) -> list[tuple[re.Pattern, str]]:
        return compile_extra_patterns(self.danger_patterns)


# === Config Loading ===


def _find_project_config(cwd: Path) -> Path | None:
    """Walk up from cwd to find .corral.toml."""
    current = cwd.resolve()
    while True:
        candidate = current / PROJECT_CONFIG_NAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:  # reached root
            return None
        current = parent


def _merge_settings(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Overlay wins for scalar settings; danger patterns accumulate."""
    merged = {**base, **overlay}
    merged["danger_patterns"] = base.get("danger_patterns", []) + overlay.get(
        "danger_patterns", []
    )
    return merged


def load_config(cwd: Path) -> Config:
    """Load ~/.corral/config.toml, .corral.toml and $CORRAL_CONFIG. Last wins."""
    settings: dict[str, Any] = {}
    sources: list[str] = []

    layers: list[tuple[Path | None, str]] = [
        (USER_CONFIG, SCOPE_USER),
        (_find_project_config(cwd), SCOPE_PROJECT),
    ]
    env_path = os.environ.get(ENV_CONFIG)
    if env_path:
        layers.append((Path(env_path).expanduser(), SCOPE_ENV))

    for path, scope in layers:
        if path is None or not path.is_file():
            continue
        settings = _merge_settings(settings, parse_config(path.read_text(), str(path)))
        sources.append(f"{scope}:{path}")

    # Relative paths are relative to where corral was run
    for name, kind in _SETTINGS.items():
        value = settings.get(name)
        if kind is Path and value is not None and not value.is_absolute():
            settings[name] = cwd / value

    return Config(**settings, sources=sources)


def parse_config(text: str, source: str = "<config>") -> dict[str, Any]:
    """Parse TOML config text into settings. Raises ValueError on bad input."""
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"{source}: {e}") from None

    settings: dict[str, Any] = {}
    for key, value in data.items():
        name = key.replace("-", "_")
        try:
            if name == "danger":
                settings["danger_patterns"] = _parse_danger(value)
            elif name in _SETTINGS:
                settings[name] = _coerce(name, value)
            else:
                raise ValueError(f"unknown setting '{key}'")
        except ValueError as e:
            raise ValueError(f"{source}: {e}") from None

    return settings


def _coerce(name: str, value: Any) -> Any:
    """Check a setting's type. Raises ValueError on mismatch."""
    kind = _SETTINGS[name]
    if kind is Path:
        if not isinstance(value, str) or not value:
            raise ValueError(f"'{name}' requires a path")
        return Path(value).expanduser()
    if kind is bool:
        if not isinstance(value, bool):
            raise ValueError(f"'{name}' must be true or false, got {value!r}")
        return value
    if kind is int:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"'{name}' requires a positive number, got {value!r}")
        return value
    if not isinstance(value, str) or not value:
        raise ValueError(f"'{name}' requires a string")
    return value


def _parse_danger(value: Any) -> list[str]:
    if not isinstance(value, dict):
        raise ValueError("'danger' must be a table")
    unknown = set(value) - {"patterns"}
    if unknown:
        raise ValueError(f"unknown danger setting '{sorted(unknown)[0]}'")
    patterns = value.get("patterns", [])
    if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
        raise ValueError("'danger.patterns' must be a list of strings")
    compile_extra_patterns(patterns)
    return list(patterns)


# === Logging ===


def _trim_commands(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Drop full command lists from events."""
    event_dict.pop("matches", None)
    return event_dict


def configure_logging(config: Config) -> None:
    """Configure structlog. Call once at startup.

    With a log path, every event is appended to it as a JSON line.
    Without one, only warnings and errors reach stderr.
    """
    trim = [] if config.log_full else [_trim_commands]
    if config.log is None:
        structlog.configure(
            processors=[
                *trim,
                structlog.processors.add_log_level,
                structlog.dev.ConsoleRenderer(colors=False),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING),
            logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        )
        return

    # Ensure log directory exists
    config.log.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(config.log)
    file_handler.setLevel(logging.INFO)
    logging.basicConfig(format="%(message)s", handlers=[file_handler], level=logging.INFO)
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", key="ts"),
            *trim,
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        logger_factory=structlog.PrintLoggerFactory(file=file_handler.stream),
    )
