from __future__ import annotations

from pathlib import Path

import pytest

from client_repo_cli import git_ops
from client_repo_cli.config import PollSettings
from client_repo_cli.errors import GhCommandError, ProvisionError, RemoteTimeoutError
from tests.utils import completed

REPO = "ciwebgroup/client-acme"
POLL = PollSettings(attempts=3, interval=0)


def test_clone_retries_while_template_propagates(fake_commands, tmp_path: Path):
    fake_commands.script(
        ["gh", "repo", "clone"],
        completed(1, "", "fatal: Remote branch main not found"),
        completed(0),
    )
    dest = tmp_path / "client-acme"

    assert git_ops.clone_repo(REPO, dest, POLL) == "cloned"
    assert len(fake_commands.called("gh", "repo", "clone")) == 2


def test_clone_gives_up_with_recovery(fake_commands, tmp_path: Path):
    fake_commands.script(["gh", "repo", "clone"], completed(1, "", "repository is empty"))
    dest = tmp_path / "client-acme"

    with pytest.raises(RemoteTimeoutError) as info:
        git_ops.clone_repo(REPO, dest, POLL)
    assert "repository is empty" in str(info.value)
    assert info.value.recovery == [f"gh repo clone {REPO} {dest}"]
    assert len(fake_commands.called("gh", "repo", "clone")) == 3


def test_existing_clone_is_reused(fake_commands, tmp_path: Path):
    dest = tmp_path / "client-acme"
    dest.mkdir()
    fake_commands.script(["git", "rev-parse", "--is-inside-work-tree"], completed(0, "true\n"))
    fake_commands.script(["git", "remote", "get-url", "origin"], completed(0, f"git@github.com:{REPO}.git\n"))
    fake_commands.script(["git", "fetch"], completed(0))

    assert git_ops.clone_repo(REPO, dest, POLL) == "reused"
    assert fake_commands.called("git", "fetch", "origin", "--prune")
    assert not fake_commands.called("gh", "repo", "clone")


def test_https_origin_matches(fake_commands, tmp_path: Path):
    fake_commands.script(["git", "remote", "get-url", "origin"], completed(0, f"https://github.com/{REPO}\n"))
    assert git_ops.origin_matches(tmp_path, REPO)


def test_foreign_directory_is_refused(fake_commands, tmp_path: Path):
    dest = tmp_path / "client-acme"
    dest.mkdir()
    fake_commands.script(["git", "rev-parse", "--is-inside-work-tree"], completed(0, "true\n"))
    fake_commands.script(["git", "remote", "get-url", "origin"], completed(0, "git@github.com:someone/else.git\n"))

    with pytest.raises(ProvisionError) as info:
        git_ops.clone_repo(REPO, dest, POLL)
    assert "--dest" in info.value.recovery[0]


def test_sync_stage_branch_force_pushes(fake_commands, tmp_path: Path):
    fake_commands.script(["git", "rev-parse", "stage"], completed(0, "0123456789abcdef\n"))
    fake_commands.script(["git"], completed(0))

    sha = git_ops.sync_stage_branch(tmp_path, "main", "stage")

    assert sha == "0123456789abcdef"
    assert [call[1:] for call in fake_commands.calls] == [
        ["fetch", "origin", "--prune"],
        ["checkout", "-B", "main", "origin/main"],
        ["branch", "-f", "stage", "main"],
        ["push", "--force", "origin", "stage"],
        ["rev-parse", "stage"],
    ]


def test_sync_stage_branch_failure_carries_manual_steps(fake_commands, tmp_path: Path):
    fake_commands.script(["git", "push"], completed(1, "", "remote: Permission denied"))
    fake_commands.script(["git"], completed(0))

    with pytest.raises(GhCommandError) as info:
        git_ops.sync_stage_branch(tmp_path, "main", "stage")
    assert "git push --force origin stage" in info.value.recovery
