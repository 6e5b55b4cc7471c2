"""Thin wrapper over the GitHub CLI.

Every remote read and write goes through ``gh`` so authentication, host
configuration and enterprise setups behave exactly as they do for the user
at the terminal.
"""

import json
import os
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .errors import GhCommandError
from .logs import logger
from .ui import console

RUN_FIELDS = "databaseId,status,conclusion,url,createdAt,event"

_settings = {"token": None, "echo": False}


def configure(token: Optional[str] = None, echo: bool = False) -> None:
    """Set the token forwarded to ``gh`` and whether commands are echoed."""
    _settings["token"] = token
    _settings["echo"] = echo


def _env() -> Optional[dict]:
    if not _settings["token"]:
        return None
    env = os.environ.copy()
    env["GH_TOKEN"] = _settings["token"]
    return env


def run_command(
    cmd: list[str],
    *,
    check: bool = False,
    interactive: bool = False,
    input_text: Optional[str] = None,
    cwd: Optional[str] = None,
) -> subprocess.CompletedProcess:
    """Run an external command, logging it and its outcome.

    ``interactive`` leaves stdin/stdout attached to the terminal (logins,
    package installs); otherwise output is captured as text.
    """
    logger.debug("run: %s (cwd=%s)", " ".join(cmd), cwd or ".")
    if _settings["echo"]:
        console.print(f"[dim]$ {' '.join(cmd)}[/dim]")
    try:
        if interactive:
            result = subprocess.run(cmd, text=True, input=input_text, cwd=cwd, env=_env())
        else:
            result = subprocess.run(cmd, text=True, input=input_text, cwd=cwd, env=_env(), capture_output=True)
    except FileNotFoundError:
        logger.debug("not found: %s", cmd[0])
        raise GhCommandError(cmd, 127, f"{cmd[0]}: command not found")

    logger.debug("exit=%s", result.returncode)
    if result.returncode != 0 and result.stderr:
        logger.debug("stderr: %s", result.stderr.strip())
    if check and result.returncode != 0:
        raise GhCommandError(cmd, result.returncode, result.stderr or "")
    return result


def run_gh(args: list[str], check: bool = False) -> subprocess.CompletedProcess:
    return run_command(["gh", *args], check=check)


def _json(result: subprocess.CompletedProcess, default):
    try:
        return json.loads(result.stdout or "")
    except json.JSONDecodeError:
        logger.debug("unparseable JSON from gh: %r", (result.stdout or "")[:200])
        return default


def parse_timestamp(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class RunJob:
    name: str
    status: str
    conclusion: Optional[str] = None
    runner_name: Optional[str] = None
    labels: list[str] = field(default_factory=list)

    @property
    def self_hosted(self) -> bool:
        return "self-hosted" in [label.lower() for label in self.labels]

    @classmethod
    def from_api(cls, data: dict) -> "RunJob":
        return cls(
            name=data.get("name") or "",
            status=data.get("status") or "",
            conclusion=data.get("conclusion"),
            runner_name=data.get("runner_name") or None,
            labels=list(data.get("labels") or []),
        )


@dataclass
class WorkflowRun:
    id: int
    status: str
    conclusion: Optional[str] = None
    url: str = ""
    created_at: Optional[datetime] = None
    event: str = ""

    @property
    def completed(self) -> bool:
        return self.status == "completed"

    @property
    def succeeded(self) -> bool:
        return self.completed and self.conclusion == "success"

    @classmethod
    def from_cli(cls, data: dict) -> "WorkflowRun":
        return cls(
            id=int(data.get("databaseId") or 0),
            status=data.get("status") or "",
            conclusion=data.get("conclusion") or None,
            url=data.get("url") or "",
            created_at=parse_timestamp(str(data.get("createdAt") or "")),
            event=data.get("event") or "",
        )


@dataclass
class Runner:
    name: str
    status: str
    busy: bool = False
    labels: list[str] = field(default_factory=list)

    @property
    def online(self) -> bool:
        return self.status == "online"

    def can_run(self, job: RunJob) -> bool:
        mine = {label.lower() for label in self.labels}
        return {label.lower() for label in job.labels} <= mine


# ─── Repositories ────────────────────────────────────────────────────────


def repo_exists(full_repo: str) -> bool:
    return run_gh(["repo", "view", full_repo, "--json", "name"]).returncode == 0


def create_repo_from_template(full_repo: str, template: str, private: bool = True) -> None:
    args = ["repo", "create", full_repo, "--template", template]
    args.append("--private" if private else "--public")
    run_gh(args, check=True)


def repo_is_populated(full_repo: str) -> bool:
    """True once the template copy has produced at least one commit."""
    result = run_gh(["api", f"repos/{full_repo}/commits?per_page=1"])
    if result.returncode != 0:
        return False
    commits = _json(result, [])
    return isinstance(commits, list) and len(commits) > 0


def default_branch(full_repo: str) -> Optional[str]:
    result = run_gh(["repo", "view", full_repo, "--json", "defaultBranchRef", "--jq", ".defaultBranchRef.name"])
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


# ─── Variables ───────────────────────────────────────────────────────────


def get_variable(full_repo: str, name: str) -> Optional[str]:
    result = run_gh(["variable", "get", name, "--repo", full_repo])
    if result.returncode != 0:
        return None
    return result.stdout.strip()


def set_variable(full_repo: str, name: str, value: str) -> None:
    run_gh(["variable", "set", name, "--body", value, "--repo", full_repo], check=True)


# ─── Workflows ───────────────────────────────────────────────────────────


def workflow_available(full_repo: str, workflow: str) -> bool:
    return run_gh(["workflow", "view", workflow, "--repo", full_repo]).returncode == 0


def dispatch_workflow(full_repo: str, workflow: str, ref: Optional[str] = None) -> None:
    args = ["workflow", "run", workflow, "--repo", full_repo]
    if ref:
        args += ["--ref", ref]
    run_gh(args, check=True)


def list_runs(full_repo: str, workflow: str, event: Optional[str] = None, limit: int = 10) -> list[WorkflowRun]:
    args = ["run", "list", "--repo", full_repo, "--workflow", workflow, "--limit", str(limit), "--json", RUN_FIELDS]
    if event:
        args += ["--event", event]
    result = run_gh(args)
    if result.returncode != 0:
        return []
    return [WorkflowRun.from_cli(item) for item in _json(result, []) if isinstance(item, dict)]


def view_run(full_repo: str, run_id: int) -> WorkflowRun:
    result = run_gh(["run", "view", str(run_id), "--repo", full_repo, "--json", RUN_FIELDS], check=True)
    return WorkflowRun.from_cli(_json(result, {}))


def run_jobs(full_repo: str, run_id: int) -> list[RunJob]:
    """Jobs of a run with their runner assignment and requested labels."""
    result = run_gh(["api", f"repos/{full_repo}/actions/runs/{run_id}/jobs"])
    if result.returncode != 0:
        return []
    payload = _json(result, {})
    if not isinstance(payload, dict):
        return []
    return [RunJob.from_api(job) for job in payload.get("jobs", []) if isinstance(job, dict)]


def self_hosted_runners(org: str) -> Optional[list[Runner]]:
    """Self-hosted runners registered to ``org``; None when we may not look."""
    result = run_gh(["api", f"orgs/{org}/actions/runners?per_page=100"])
    if result.returncode != 0:
        return None
    payload = _json(result, {})
    if not isinstance(payload, dict):
        return None
    runners = []
    for item in payload.get("runners", []):
        if not isinstance(item, dict):
            continue
        runners.append(
            Runner(
                name=item.get("name") or "",
                status=item.get("status") or "",
                busy=bool(item.get("busy")),
                labels=[label.get("name", "") for label in item.get("labels", []) if isinstance(label, dict)],
            )
        )
    return runners


# ─── Auth ────────────────────────────────────────────────────────────────


def auth_ok() -> bool:
    return run_gh(["auth", "status"]).returncode == 0


def auth_login() -> bool:
    return run_command(["gh", "auth", "login"], interactive=True).returncode == 0


def version(tool: str) -> str:
    result = run_command([tool, "--version"])
    lines = (result.stdout or "").strip().splitlines()
    return lines[0] if result.returncode == 0 and lines else ""
