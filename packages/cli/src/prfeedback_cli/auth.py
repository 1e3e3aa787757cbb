"""Credential and pull request context resolution with gh CLI fallback.

Token resolution order (stops at first success):
  1. GITHUB_TOKEN / GH_TOKEN environment variables (CI / explicit override)
  2. `gh auth token` (GitHub CLI session)

Repository and PR detection ask `gh` about the current checkout, the same
way `gh pr view` would pick the PR for the current branch.

None of these helpers raise: callers turn None into a UsageError.
"""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess

logger = logging.getLogger(__name__)

_REMOTE_RE = re.compile(r"github\.com[:/](?P<repo>[^/\s]+/[^/\s]+?)(?:\.git)?/?$")


def _run(cmd: list[str]) -> str | None:
    """Run a command, returning stripped stdout or None on any failure."""
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=15)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        logger.debug("%s failed: %s", " ".join(cmd), result.stderr.strip())
        return None
    return result.stdout.strip() or None


def _run_json(cmd: list[str]) -> dict | None:
    output = _run(cmd)
    if output is None:
        return None
    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        logger.debug("%s returned non-JSON output: %s", " ".join(cmd), output[:200])
        return None
    return data if isinstance(data, dict) else None


def resolve_github_token() -> str | None:
    """Return a GitHub token or None if no valid source is available."""
    for name in ("GITHUB_TOKEN", "GH_TOKEN"):
        token = os.environ.get(name)
        if token:
            return token

    token = _run(["gh", "auth", "token"])
    if token:
        logger.debug("Resolved GitHub token via gh CLI session.")
    return token


def detect_repo() -> str | None:
    """Return ``owner/name`` for the current checkout."""
    info = _run_json(["gh", "repo", "view", "--json", "nameWithOwner"])
    if info and info.get("nameWithOwner"):
        return info["nameWithOwner"]

    remote = _run(["git", "remote", "get-url", "origin"])
    if remote:
        match = _REMOTE_RE.search(remote)
        if match:
            return match.group("repo")
    return None


def detect_pr_number(branch: str | None = None, repo: str | None = None) -> int | None:
    """Return the PR number for ``branch`` (or the current branch)."""
    cmd = ["gh", "pr", "view"]
    if branch:
        cmd.append(branch)
    if repo:
        cmd.extend(["--repo", repo])
    cmd.extend(["--json", "number"])
    info = _run_json(cmd)
    if info and isinstance(info.get("number"), int):
        return info["number"]
    return None
