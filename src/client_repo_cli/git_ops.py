"""Local checkout handling: clone, reuse and stage branch sync."""

import re
import time
from pathlib import Path

from .config import PollSettings
from .errors import GhCommandError, ProvisionError, RemoteTimeoutError
from .gh import run_command
from .logs import logger


def git(args: list[str], cwd: Path, check: bool = True):
    return run_command(["git", *args], cwd=str(cwd), check=check)


def is_git_repo(path: Path) -> bool:
    """Check if the specified path is the top of a git work tree."""
    if not path.is_dir():
        return False
    result = git(["rev-parse", "--is-inside-work-tree"], cwd=path, check=False)
    return result.returncode == 0 and result.stdout.strip() == "true"


def origin_matches(path: Path, full_repo: str) -> bool:
    result = git(["remote", "get-url", "origin"], cwd=path, check=False)
    if result.returncode != 0:
        return False
    url = result.stdout.strip()
    pattern = rf"[:/]{re.escape(full_repo)}(\.git)?/?$"
    return re.search(pattern, url, re.IGNORECASE) is not None


def clone_repo(full_repo: str, dest: Path, poll: PollSettings) -> str:
    """Clone ``full_repo`` into ``dest`` or reuse an existing checkout.

    Returns "cloned" or "reused". Cloning is retried because a repository
    created from a template can be visible before its contents are.
    """
    if dest.exists():
        if is_git_repo(dest) and origin_matches(dest, full_repo):
            git(["fetch", "origin", "--prune"], cwd=dest)
            return "reused"
        raise ProvisionError(
            f"{dest} already exists and is not a clone of {full_repo}",
            recovery=[f"Remove or rename {dest}, or pass --dest to clone elsewhere"],
        )

    dest.parent.mkdir(parents=True, exist_ok=True)
    last_error = ""
    for attempt in range(1, poll.attempts + 1):
        result = run_command(["gh", "repo", "clone", full_repo, str(dest)])
        if result.returncode == 0:
            return "cloned"
        last_error = (result.stderr or "").strip()
        logger.debug("clone attempt %s/%s failed", attempt, poll.attempts)
        if attempt < poll.attempts:
            time.sleep(poll.interval)

    raise RemoteTimeoutError(
        f"Could not clone {full_repo}: {last_error or 'unknown error'}",
        recovery=[f"gh repo clone {full_repo} {dest}"],
    )


def sync_stage_branch(path: Path, source: str, stage: str) -> str:
    """Point ``stage`` at the tip of ``origin/<source>`` and force-push it.

    Returns the commit pushed. Repeating the call pushes the same commit.
    """
    recovery = [
        f"cd {path}",
        "git fetch origin",
        f"git checkout -B {source} origin/{source}",
        f"git branch -f {stage} {source}",
        f"git push --force origin {stage}",
    ]
    try:
        git(["fetch", "origin", "--prune"], cwd=path)
        git(["checkout", "-B", source, f"origin/{source}"], cwd=path)
        git(["branch", "-f", stage, source], cwd=path)
        git(["push", "--force", "origin", stage], cwd=path)
        sha = git(["rev-parse", stage], cwd=path).stdout.strip()
    except GhCommandError as exc:
        exc.recovery = recovery
        raise
    return sha
