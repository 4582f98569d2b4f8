"""
Permission grammar for Corral.

Claude Code permission strings come in a handful of shapes:

    Bash(npm run test)              shell invocation
    Bash(npm run:*)                 shell pattern (":*" suffix wildcard)
    WebFetch(domain:github.com)     network domain
    Read(//Users/me/work/**)        filesystem path (Read/Write/Edit)
    mcp__playwright__navigate       tool-server command
    mcp__playwright                 whole tool server

parse_permission() turns any of them into a Permission. Nothing in this
module raises: strings it doesn't recognize come back as OTHER.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from corral.core.bash import command_words


class ResourceKind(str, Enum):
    """Permission-resource category of a command."""

    SHELL = "shell"
    NETWORK_DOMAIN = "network-domain"
    FILESYSTEM_PATH = "filesystem-path"
    TOOL_SERVER = "tool-server"
    OTHER = "other"


WILDCARD = "*"
SUFFIX_WILDCARD = ":*"

SERVER_PREFIX = "mcp__"
SERVER_SEPARATOR = "__"
DOMAIN_PREFIX = "domain:"

SHELL_TOOLS = frozenset({"Bash"})
NETWORK_TOOLS = frozenset({"WebFetch"})
PATH_TOOLS = frozenset({"Read", "Write", "Edit", "MultiEdit", "NotebookEdit"})

_TOOL_CALL = re.compile(r"^(?P<tool>[A-Za-z][A-Za-z0-9_]*)\((?P<body>.*)\)$", re.DOTALL)


@dataclass(frozen=True)
class Permission:
    """A parsed permission string."""

    raw: str
    kind: ResourceKind
    tool: str
    """Tool name ("Bash", "WebFetch", "Read"), "mcp" for servers, "" if unknown."""

    identifier: str
    """The part that names the resource: shell body, domain, path, server[__command]."""

    base: str
    """Literal prefix of raw before the wildcard marker (raw itself if none)."""

    wildcard: bool

    @property
    def stem(self) -> str:
        """Identifier text before the wildcard marker."""
        if not self.wildcard:
            return self.identifier
        return _before_wildcard(self.identifier)

    @property
    def literal_text(self) -> str:
        """Identifier with every wildcard marker blanked out.

        Keeps the literal text on both sides of a mid-pattern "*", so
        "git * --hard" reads as "git   --hard".
        """
        return self.identifier.replace(SUFFIX_WILDCARD, " ").replace(WILDCARD, " ")

    @property
    def words(self) -> list[str]:
        """Shell words of the stem. Empty for non-shell permissions."""
        if self.kind is not ResourceKind.SHELL:
            return []
        return command_words(self.stem)

    @property
    def server(self) -> str | None:
        if self.kind is not ResourceKind.TOOL_SERVER:
            return None
        return self.identifier.split(SERVER_SEPARATOR, 1)[0]

    @property
    def server_command(self) -> str | None:
        if self.kind is not ResourceKind.TOOL_SERVER:
            return None
        parts = self.identifier.split(SERVER_SEPARATOR, 1)
        return parts[1] if len(parts) > 1 else None


@dataclass(frozen=True)
class Classification:
    """Advisory classification of a raw command."""

    kind: ResourceKind
    executable: str | None = None


def _wildcard_index(text: str) -> int:
    """Index where the wildcard marker starts, or -1.

    A "*" preceded by ":" belongs to the ":*" suffix marker, so the marker
    starts at the colon.
    """
    i = text.find(WILDCARD)
    if i > 0 and text[i - 1] == ":":
        i -= 1
    return i


def _before_wildcard(text: str) -> str:
    i = _wildcard_index(text)
    return text if i < 0 else text[:i]


def parse_permission(command: str) -> Permission:
    """Parse a permission string into its kind, identifier and base."""
    raw = command
    wildcard = WILDCARD in raw
    base = _before_wildcard(raw)

    if raw.startswith(SERVER_PREFIX):
        return Permission(
            raw=raw,
            kind=ResourceKind.TOOL_SERVER,
            tool="mcp",
            identifier=raw[len(SERVER_PREFIX):],
            base=base,
            wildcard=wildcard,
        )

    m = _TOOL_CALL.match(raw.strip())
    if m is None:
        return Permission(raw, ResourceKind.OTHER, "", raw, base, wildcard)

    tool = m.group("tool")
    body = m.group("body")

    if tool in SHELL_TOOLS:
        kind = ResourceKind.SHELL
        identifier = body
    elif tool in NETWORK_TOOLS and body.startswith(DOMAIN_PREFIX):
        kind = ResourceKind.NETWORK_DOMAIN
        identifier = body[len(DOMAIN_PREFIX):]
    elif tool in PATH_TOOLS:
        kind = ResourceKind.FILESYSTEM_PATH
        identifier = body
    else:
        kind = ResourceKind.OTHER
        identifier = body

    return Permission(raw, kind, tool, identifier, base, wildcard)


def classify(command: str) -> Classification:
    """Classify a raw command into a resource kind and its executable.

    The executable is the first shell word for Bash permissions and the
    server name for tool-server permissions.
    """
    perm = parse_permission(command)
    if perm.kind is ResourceKind.SHELL:
        words = perm.words
        return Classification(perm.kind, words[0] if words else None)
    if perm.kind is ResourceKind.TOOL_SERVER:
        return Classification(perm.kind, perm.server or None)
    return Classification(perm.kind)


def token_depth(words: list[str]) -> int:
    """How many leading words make up the executable/subcommand token.

    The executable always counts. The second word counts when it is not a
    flag, so "npm run" is two deep and "git -C x" is one.
    """
    if not words:
        return 0
    if len(words) > 1 and not words[1].startswith("-"):
        return 2
    return 1


def base_token(words: list[str], depth: int | None = None) -> str:
    """Join the first `depth` words (default: token_depth) into a token."""
    if depth is None:
        depth = token_depth(words)
    return " ".join(words[:depth])
