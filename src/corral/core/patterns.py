"""
Intrinsic danger patterns for Corral.

A wildcard over any of these could grant something irreversible, so the
rule engine refuses to group them. Matching is plain regex over the text,
not a parse: over-blocking is fine, under-blocking is not.
"""

from __future__ import annotations

import re
from collections.abc import Iterable


# === Dangerous Patterns ===
# (regex, description) - the description is quoted back to the operator

DANGEROUS_PATTERNS: list[tuple[re.Pattern, str]] = [
    # File deletion
    (re.compile(r"\brm\b"), "file deletion"),
    (re.compile(r"\brmdir\b"), "file deletion"),
    (re.compile(r"\bdel\b"), "file deletion"),
    (re.compile(r"\bunlink\b"), "file deletion"),
    (re.compile(r"\bshred\b"), "file deletion"),

    # Forced / irreversible flags
    (re.compile(r"--force\b"), "forced operation"),
    (re.compile(r"--hard\b"), "irreversible reset"),

    # Permission changes
    (re.compile(r"\bchmod\b"), "permission change"),
    (re.compile(r"\bchown\b"), "permission change"),
    (re.compile(r"\bchgrp\b"), "permission change"),
    (re.compile(r"\bsetfacl\b"), "permission change"),

    # Privilege elevation
    (re.compile(r"\bsudo\b"), "privilege elevation"),
    (re.compile(r"\bdoas\b"), "privilege elevation"),
    (re.compile(r"\bpkexec\b"), "privilege elevation"),
    (re.compile(r"\bsu\b"), "privilege elevation"),

    # Raw network fetch (can download and run arbitrary code)
    (re.compile(r"\bcurl\b"), "network fetch"),
    (re.compile(r"\bwget\b"), "network fetch"),
    (re.compile(r"\b(nc|ncat|netcat)\b"), "network fetch"),

    # Service and process control
    (re.compile(r"\bsystemctl\b"), "service control"),
    (re.compile(r"\bservice\b"), "service control"),
    (re.compile(r"\blaunchctl\b"), "service control"),
    (re.compile(r"\b(kill|killall|pkill)\b"), "process control"),
    (re.compile(r"\b(shutdown|reboot)\b"), "service control"),

    # Destructive infrastructure actions
    (re.compile(r"\bkubectl\b.*\bdelete\b"), "infrastructure destroy"),
    (re.compile(r"\bterraform\b.*\bdestroy\b"), "infrastructure destroy"),
    (re.compile(r"\bhelm\b.*\b(uninstall|delete)\b"), "infrastructure destroy"),
    (re.compile(r"\bdd\b"), "disk overwrite"),
    (re.compile(r"\bmkfs"), "disk overwrite"),
]


def compile_extra_patterns(patterns: Iterable[str]) -> list[tuple[re.Pattern, str]]:
    """Compile user-supplied regexes. Raises ValueError on a bad regex."""
    compiled = []
    for pattern in patterns:
        try:
            compiled.append((re.compile(pattern), f"custom rule '{pattern}'"))
        except re.error as e:
            raise ValueError(f"invalid danger pattern '{pattern}': {e}") from None
    return compiled


def find_danger(
    text: str, extra: Iterable[tuple[re.Pattern, str]] = ()
) -> str | None:
    """Return the description of the first denylist entry text hits, or None."""
    for pattern, description in [*DANGEROUS_PATTERNS, *extra]:
        if pattern.search(text):
            return description
    return None


def is_intrinsically_dangerous(
    text: str, extra: Iterable[tuple[re.Pattern, str]] = ()
) -> bool:
    """Check an executable/argument string against the danger denylist."""
    return find_danger(text, extra) is not None
