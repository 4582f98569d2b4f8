"""Tests for the permission grammar and classifier."""

import pytest

from corral.core.grammar import (
    ResourceKind,
    base_token,
    classify,
    parse_permission,
    token_depth,
)

# (permission, kind, identifier, base, wildcard)
TESTS = [
    ("Bash(npm run test)", ResourceKind.SHELL, "npm run test", "Bash(npm run test)", False),
    ("Bash(npm run:*)", ResourceKind.SHELL, "npm run:*", "Bash(npm run", True),
    ("Bash(git log*)", ResourceKind.SHELL, "git log*", "Bash(git log", True),
    ("WebFetch(domain:github.com)", ResourceKind.NETWORK_DOMAIN, "github.com", "WebFetch(domain:github.com)", False),
    ("WebFetch(domain:*)", ResourceKind.NETWORK_DOMAIN, "*", "WebFetch(domain", True),
    ("Read(//Users/me/work/**)", ResourceKind.FILESYSTEM_PATH, "//Users/me/work/**", "Read(//Users/me/work/", True),
    ("Edit(src/app.py)", ResourceKind.FILESYSTEM_PATH, "src/app.py", "Edit(src/app.py)", False),
    ("mcp__playwright__navigate", ResourceKind.TOOL_SERVER, "playwright__navigate", "mcp__playwright__navigate", False),
    ("mcp__playwright", ResourceKind.TOOL_SERVER, "playwright", "mcp__playwright", False),
    ("WebSearch", ResourceKind.OTHER, "WebSearch", "WebSearch", False),
    ("WebFetch(https://example.com)", ResourceKind.OTHER, "https://example.com", "WebFetch(https://example.com)", False),
    ("Task(explore)", ResourceKind.OTHER, "explore", "Task(explore)", False),
    ("", ResourceKind.OTHER, "", "", False),
]


@pytest.mark.parametrize("raw,kind,identifier,base,wildcard", TESTS)
def test_parse_permission(raw, kind, identifier, base, wildcard):
    perm = parse_permission(raw)
    assert perm.kind is kind
    assert perm.identifier == identifier
    assert perm.base == base
    assert perm.wildcard is wildcard


class TestPermissionProperties:
    def test_stem_drops_suffix_marker(self):
        assert parse_permission("Bash(npm run:*)").stem == "npm run"

    def test_stem_without_wildcard_is_identifier(self):
        assert parse_permission("Bash(ls -la)").stem == "ls -la"

    def test_literal_text_keeps_both_sides_of_wildcard(self):
        assert parse_permission("Bash(git * --hard)").literal_text == "git   --hard"
        assert parse_permission("Bash(git push --force:*)").literal_text == "git push --force "

    def test_words_keep_quoted_arguments(self):
        perm = parse_permission("Bash(git commit -m 'fix the bug')")
        assert perm.words == ["git", "commit", "-m", "fix the bug"]

    def test_words_empty_for_non_shell(self):
        assert parse_permission("WebFetch(domain:github.com)").words == []

    def test_server_and_command(self):
        perm = parse_permission("mcp__playwright__navigate")
        assert perm.server == "playwright"
        assert perm.server_command == "navigate"

    def test_bare_server_has_no_command(self):
        perm = parse_permission("mcp__playwright")
        assert perm.server == "playwright"
        assert perm.server_command is None

    def test_server_fields_none_for_shell(self):
        perm = parse_permission("Bash(ls)")
        assert perm.server is None
        assert perm.server_command is None


class TestClassify:
    @pytest.mark.parametrize(
        "command,kind,executable",
        [
            ("Bash(npm run test)", ResourceKind.SHELL, "npm"),
            ("Bash(bunx vite)", ResourceKind.SHELL, "bunx"),
            ("mcp__github__create_issue", ResourceKind.TOOL_SERVER, "github"),
            ("WebFetch(domain:docs.python.org)", ResourceKind.NETWORK_DOMAIN, None),
            ("Read(//etc/**)", ResourceKind.FILESYSTEM_PATH, None),
            ("something odd", ResourceKind.OTHER, None),
        ],
    )
    def test_classify(self, command, kind, executable):
        result = classify(command)
        assert result.kind is kind
        assert result.executable == executable

    def test_never_raises_on_garbage(self):
        for junk in ["Bash(", "Bash())", "((", "mcp__", "Bash(echo 'unterminated)"]:
            classify(junk)


class TestBaseToken:
    def test_depth_counts_subcommand(self):
        assert token_depth(["npm", "run", "test"]) == 2

    def test_depth_skips_flag(self):
        assert token_depth(["git", "-C", "repo", "status"]) == 1

    def test_depth_single_word(self):
        assert token_depth(["make"]) == 1

    def test_depth_empty(self):
        assert token_depth([]) == 0

    def test_token_at_pattern_depth(self):
        assert base_token(["npm", "run", "build"], 2) == "npm run"
        assert base_token(["bunx", "vite", "build"], 1) == "bunx"

    def test_default_depth(self):
        assert base_token(["npm", "run", "test"]) == "npm run"
        assert base_token(["ls", "-la"]) == "ls"
