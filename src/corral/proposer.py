"""
Ask a model to propose groupings for the collected commands.

The model runs through the Claude CLI in print mode with the prompt on
stdin. Its answer is parsed strictly and then always goes through the
rule engine; nothing it proposes reaches a review file unvalidated.

Tool-server commands are grouped here, per server, before the model sees
anything. Those groupings carry the server-style kind so the operator can
choose between the whole server and the individual commands.
"""

from __future__ import annotations

import json
import os
import re
import shutil
import subprocess
from collections.abc import Callable, Iterable
from pathlib import Path

import structlog

from corral.core.config import Config
from corral.core.errors import ProposalError
from corral.core.grammar import SERVER_PREFIX, ResourceKind, parse_permission
from corral.core.models import (
    Confidence,
    GroupKind,
    Grouping,
    GroupingResult,
    SafetyCategory,
    Statistics,
    grouping_result_from_dict,
)
from corral.core.validator import ValidationResult, validate_result
from corral.sessions import CommandInfo

log = structlog.get_logger()

ENV_CLAUDE_CLI = "CLAUDE_CLI_PATH"

Runner = Callable[[str, Config], str]

PROMPT_TEMPLATE = """\
You are an expert at analyzing command patterns for safety and efficiency in developer workflows.

TASK: Analyze these Claude Code permission commands and suggest intelligent groupings.

COMMANDS:
{commands}

SAFETY FRAMEWORK:

1. SAFE TO WILDCARD (confidence: high):
   - Development tool commands: poetry run, npm run, pnpm, yarn
   - Version control (non-destructive): git checkout, git add, git status, git diff, git log
   - Testing frameworks: pytest, jest, vitest, cargo test
   - Build tools: npm build, cargo build, make
   - Linters/formatters: eslint, prettier, black, rustfmt
   - Package managers (read): pip list, npm list, cargo tree
   Commands that are project-scoped, reversible, or read-only.

2. MAYBE SAFE (confidence: medium, suggest but flag for review):
   - Version control (publishing): git commit, git push (without --force)
   - Package installation: npm install, pip install, poetry add
   - Database migrations: forward migrations only
   Commands that modify state but are generally safe in development.

3. NEVER WILDCARD (keep individual):
   - Destructive file operations: rm, rmdir, del, unlink
   - Force operations: git push --force, git reset --hard
   - Permission changes: chmod, chown, sudo
   - Network operations: curl, wget
   - System modifications: systemctl, service, kill
   - Production deployments: kubectl apply, terraform apply, aws s3 rm
   - Domain access: never WebFetch(domain:*), keep specific domains
   - Sensitive paths: Read(//home/**), Read(//etc/**), paths with credentials

4. WILDCARDING RULES:
   - Bash: wildcard the subcommand arguments only, e.g. "Bash(poetry run:*)".
     Different executables stay separate: bun/bunx, npm/npx, pnpm/pnpx.
   - WebFetch: list domains explicitly, never use a wildcard.
   - Read: be conservative. "Read(//**)" allows reading the entire filesystem.
   - A pattern must never appear in its own matches.
   - Prefer the narrowest pattern: "Bash(npm run:*)" over "Bash(npm:*)" if only npm run commands are present.

5. GROUPING LOGIC:
   Group commands only if they share the same base command, every variation
   is safe, and the wildcard doesn't introduce new attack vectors.

OUTPUT FORMAT (strict JSON):
{{
  "groupings": [
    {{
      "pattern": "Bash(poetry run:*)",
      "matches": ["Bash(poetry run test)", "Bash(poetry run analyze)"],
      "reasoning": "Safe: poetry run executes project-defined scripts.",
      "confidence": "high",
      "safetyCategory": "SAFE_TO_WILDCARD"
    }}
  ],
  "ungrouped": [
    {{
      "command": "Bash(rm -rf temp)",
      "reasoning": "Dangerous: destructive file deletion.",
      "recommended": false,
      "safetyCategory": "NEVER_WILDCARD"
    }}
  ],
  "statistics": {{
    "totalCommands": {total},
    "grouped": 0,
    "ungrouped": 0,
    "categoryCounts": {{"SAFE_TO_WILDCARD": 0, "MAYBE_SAFE": 0, "NEVER_WILDCARD": 0}}
  }}
}}

Be conservative. When in doubt, don't group.
Only return valid JSON, no markdown formatting or code blocks."""

_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?|\n?```\s*$")


def build_prompt(commands: list[CommandInfo]) -> str:
    lines = []
    for info in commands:
        count = len(info.projects)
        lines.append(f"- {info.command} (used in {count} project{'s' if count != 1 else ''})")
    return PROMPT_TEMPLATE.format(commands="\n".join(lines), total=len(commands))


# === Tool-server groupings ===


def group_server_commands(commands: Iterable[str]) -> tuple[list[Grouping], list[str]]:
    """Split off one server-style grouping per tool server.

    Returns the groupings and the commands left for the model. A bare
    "mcp__server" grant is already whole-server and is left alone.
    """
    by_server: dict[str, list[str]] = {}
    rest: list[str] = []
    for command in commands:
        perm = parse_permission(command)
        if perm.kind is ResourceKind.TOOL_SERVER and perm.server and perm.server_command:
            by_server.setdefault(perm.server, []).append(command)
        else:
            rest.append(command)

    groupings = [
        Grouping(
            pattern=f"{SERVER_PREFIX}{server}",
            matches=matches,
            reasoning=f"All {len(matches)} granted command(s) of tool server '{server}'",
            confidence=Confidence.HIGH,
            safety_category=SafetyCategory.MCP_SERVER,
            group_kind=GroupKind.SERVER,
        )
        for server, matches in by_server.items()
    ]
    return groupings, rest


# === Model call ===


def find_claude_cli(config: Config) -> Path:
    """Locate the claude executable. Raises ProposalError if there is none."""
    candidates: list[Path] = []
    if config.claude_cli is not None:
        candidates.append(config.claude_cli)
    if os.environ.get(ENV_CLAUDE_CLI):
        candidates.append(Path(os.environ[ENV_CLAUDE_CLI]).expanduser())
    candidates.append(Path.home() / ".claude" / "local" / "claude")
    on_path = shutil.which("claude")
    if on_path:
        candidates.append(Path(on_path))

    for candidate in candidates:
        if candidate.is_file():
            return candidate
    raise ProposalError(
        f"Claude CLI not found. Set claude_cli in the config, set ${ENV_CLAUDE_CLI}, "
        "or put claude on PATH"
    )


def call_model(prompt: str, config: Config) -> str:
    """Run `claude --model <model> --print` with the prompt on stdin."""
    cli = find_claude_cli(config)
    try:
        proc = subprocess.run(
            [str(cli), "--model", config.model, "--print"],
            input=prompt,
            capture_output=True,
            text=True,
            timeout=config.proposal_timeout,
        )
    except subprocess.TimeoutExpired:
        raise ProposalError(f"Claude CLI timed out after {config.proposal_timeout}s") from None
    except OSError as e:
        raise ProposalError(f"Failed to run Claude CLI: {e}") from e
    if proc.returncode != 0:
        raise ProposalError(
            f"Claude CLI exited with code {proc.returncode}: {proc.stderr.strip()}"
        )
    return proc.stdout


# === Parsing ===


def strip_code_fences(text: str) -> str:
    """Remove a markdown code fence wrapped around the whole answer."""
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE.sub("", text).strip()
    return text


def parse_proposal(text: str) -> GroupingResult:
    """Parse the model's answer. Raises ProposalError on anything malformed."""
    body = strip_code_fences(text)
    if not body:
        raise ProposalError("proposal: empty response")
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise ProposalError(f"proposal: invalid JSON ({e})") from None
    return grouping_result_from_dict(data)


def propose_groupings(
    commands: list[CommandInfo],
    config: Config,
    runner: Runner = call_model,
) -> tuple[GroupingResult, ValidationResult]:
    """Propose, then validate. Returns the validated result and the report."""
    server_groupings, rest = group_server_commands(c.command for c in commands)
    by_command = {c.command: c for c in commands}

    if rest:
        response = runner(build_prompt([by_command[c] for c in rest]), config)
        proposal = parse_proposal(response)
        log.info(
            "proposal_received",
            groupings=len(proposal.groupings),
            ungrouped=len(proposal.ungrouped),
            chars=len(response),
        )
    else:
        proposal = GroupingResult([], [])

    groupings = server_groupings + proposal.groupings
    combined = GroupingResult(
        groupings,
        proposal.ungrouped,
        Statistics.from_items(groupings, proposal.ungrouped, len(commands)),
    )
    return validate_result(combined, config.extra_danger())
