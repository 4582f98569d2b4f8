"""Bash word splitting for permission bodies."""

from __future__ import annotations

from typing import Any

import bashlex


def command_words(text: str) -> list[str]:
    """Return the words of the first simple command in text.

    Uses bashlex so quoted arguments stay intact ("git commit -m 'a b'" has
    four words). Anything bashlex can't parse falls back to whitespace
    splitting, so callers always get an answer.
    """
    text = text.strip()
    if not text:
        return []
    try:
        parts = bashlex.parse(text)
    except Exception:
        return text.split()
    for part in parts:
        words = _first_command(part)
        if words:
            return words
    return text.split()


def _first_command(node: Any) -> list[str]:
    """Walk the AST depth-first and return the first command's words."""
    if node.kind == "command":
        return [p.word for p in node.parts if p.kind == "word"]

    children = getattr(node, "list", None) or getattr(node, "parts", None) or []
    for child in children:
        words = _first_command(child)
        if words:
            return words
    return []
