"""The provisioning sequence.

Each step reads remote state before acting, so running the sequence again
after an interruption continues from wherever the repository actually is.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from . import editor, gh, git_ops, workflow
from .config import PollSettings, ProvisionConfig
from .errors import GhCommandError, RemoteTimeoutError, UserAborted, WorkflowFailedError
from .gh import WorkflowRun
from .logs import logger
from .slug import derive_slug, normalize_domain, repo_name_for
from .ui import StepTracker

STEPS = [
    ("repo", "Create repository from template"),
    ("populate", "Wait for template contents"),
    ("variable", "Set domain variable"),
    ("clone", "Clone repository"),
    ("workflow-ready", "Wait for init workflow"),
    ("dispatch", "Dispatch init workflow"),
    ("wait", "Wait for init workflow run"),
    ("stage", "Sync and push stage branch"),
    ("open", "Open repository"),
]


@dataclass(frozen=True)
class Target:
    domain: str
    slug: str
    repo_name: str
    full_repo: str

    @property
    def url(self) -> str:
        return f"https://github.com/{self.full_repo}"


def plan_target(domain: str, org: str) -> Target:
    normalized = normalize_domain(domain)
    slug = derive_slug(normalized)
    repo_name = repo_name_for(slug)
    return Target(domain=normalized, slug=slug, repo_name=repo_name, full_repo=f"{org}/{repo_name}")


@dataclass
class ProvisionOptions:
    dest: Path
    clone: bool = True
    wait: bool = True


@dataclass
class ProvisionResult:
    target: Target
    created: bool = False
    clone_path: Optional[Path] = None
    run: Optional[WorkflowRun] = None
    stage_sha: Optional[str] = None


def poll_until(check: Callable[[], bool], poll: PollSettings, on_wait: Optional[Callable[[int], None]] = None) -> bool:
    for attempt in range(1, poll.attempts + 1):
        if check():
            return True
        if attempt < poll.attempts:
            if on_wait:
                on_wait(attempt)
            time.sleep(poll.interval)
    return False


class Provisioner:
    """Run the steps in order, recording each on ``tracker``.

    ``confirm(question, assumed)`` asks the user a yes/no question; ``assumed``
    is the answer to use when nobody can be asked. ``notify(title, body)``
    shows a message without asking anything. ``choose_editor()`` returns the
    editor to open the clone with, or None to leave it closed.
    """

    def __init__(
        self,
        target: Target,
        config: ProvisionConfig,
        options: ProvisionOptions,
        tracker: StepTracker,
        confirm: Callable[[str, bool], bool],
        notify: Callable[[str, str], None],
        choose_editor: Optional[Callable[[], Optional[str]]] = None,
    ):
        self.target = target
        self.config = config
        self.options = options
        self.tracker = tracker
        self.confirm = confirm
        self.notify = notify
        self.choose_editor = choose_editor
        self.result = ProvisionResult(target=target)
        for key, label in STEPS:
            tracker.add(key, label)

    @property
    def clone_path(self) -> Path:
        return self.options.dest / self.target.repo_name

    def stage_push_commands(self) -> list[str]:
        return [
            f"git clone git@github.com:{self.target.full_repo}.git && cd {self.target.repo_name}",
            f"git push --force origin {self.config.source_branch}:{self.config.stage_branch}",
        ]

    def run(self) -> ProvisionResult:
        self.step_repo()
        self.step_populate()
        self.step_variable()
        self.step_clone()
        self.step_workflow_ready()
        run = self.step_dispatch()
        if self.step_wait(run):
            self.step_stage()
        self.step_open()
        return self.result

    def _fail(self, key: str, exc: Exception):
        self.tracker.error(key, str(exc).splitlines()[0])
        logger.debug("step %s failed: %s", key, exc)

    def step_repo(self) -> None:
        full = self.target.full_repo
        self.tracker.start("repo")
        if gh.repo_exists(full):
            if not self.confirm(f"Repository {full} already exists. Continue with existing repository?", True):
                self.tracker.skip("repo", "declined")
                raise UserAborted("Aborted.")
            self.tracker.complete("repo", "using existing repository")
            return
        try:
            gh.create_repo_from_template(full, self.config.template, private=True)
        except GhCommandError as exc:
            exc.recovery = [f"gh repo create {full} --template {self.config.template} --private"]
            self._fail("repo", exc)
            raise
        self.result.created = True
        self.tracker.complete("repo", f"from {self.config.template}")

    def step_populate(self) -> None:
        full = self.target.full_repo
        poll = self.config.populate_poll
        self.tracker.start("populate")
        ok = poll_until(
            lambda: gh.repo_is_populated(full),
            poll,
            on_wait=lambda n: self.tracker.start("populate", f"attempt {n}/{poll.attempts}"),
        )
        if not ok:
            exc = RemoteTimeoutError(
                f"{full} still has no commits after {poll.attempts} checks",
                recovery=[f"gh repo view {full} --web", "Run this command again once the repository has content"],
            )
            self._fail("populate", exc)
            raise exc
        self.tracker.complete("populate", "template copied")

    def step_variable(self) -> None:
        full = self.target.full_repo
        name = self.config.domain_variable
        self.tracker.start("variable")
        if gh.get_variable(full, name) == self.target.domain:
            self.tracker.skip("variable", f"{name} already set")
            return
        try:
            gh.set_variable(full, name, self.target.domain)
        except GhCommandError as exc:
            exc.recovery = [f'gh variable set {name} --body "{self.target.domain}" --repo {full}']
            self._fail("variable", exc)
            raise
        self.tracker.complete("variable", f"{name}={self.target.domain}")

    def step_clone(self) -> None:
        if not self.options.clone:
            self.tracker.skip("clone", "--no-clone")
            return
        self.tracker.start("clone")
        try:
            status = git_ops.clone_repo(self.target.full_repo, self.clone_path, self.config.populate_poll)
        except Exception as exc:
            self._fail("clone", exc)
            raise
        self.result.clone_path = self.clone_path
        self.tracker.complete("clone", f"{status} {self.clone_path}")

    def step_workflow_ready(self) -> None:
        full = self.target.full_repo
        wf = self.config.init_workflow
        poll = self.config.workflow_poll
        self.tracker.start("workflow-ready")
        ok = poll_until(
            lambda: gh.workflow_available(full, wf),
            poll,
            on_wait=lambda n: self.tracker.start("workflow-ready", f"attempt {n}/{poll.attempts}"),
        )
        if not ok:
            exc = RemoteTimeoutError(
                f"Workflow {wf} is not available yet",
                recovery=[f"gh workflow run {wf} --repo {full}"] + self.stage_push_commands(),
            )
            self._fail("workflow-ready", exc)
            raise exc
        self.tracker.complete("workflow-ready", wf)

    def step_dispatch(self) -> WorkflowRun:
        full = self.target.full_repo
        wf = self.config.init_workflow
        self.tracker.start("dispatch")
        state, existing = workflow.latest_init_state(full, wf)
        if state == "succeeded":
            self.tracker.skip("dispatch", f"run {existing.id} already succeeded")
            self.result.run = existing
            return existing
        if state == "running":
            self.tracker.complete("dispatch", f"attached to run {existing.id}")
            self.result.run = existing
            return existing

        try:
            known = workflow.dispatched_run_ids(full, wf)
            not_before = datetime.now(timezone.utc)
            gh.dispatch_workflow(full, wf)
            run = workflow.find_dispatched_run(full, wf, not_before, self.config.discovery_poll, known)
        except (GhCommandError, RemoteTimeoutError) as exc:
            exc.recovery = [f"gh workflow run {wf} --repo {full}", f"gh run list --repo {full} --workflow {wf}"]
            self._fail("dispatch", exc)
            raise
        self.result.run = run
        self.tracker.complete("dispatch", f"run {run.id}")
        return run

    def step_wait(self, run: WorkflowRun) -> bool:
        """Return True when the init run succeeded and deployment may proceed."""
        full = self.target.full_repo
        if run.succeeded:
            self.tracker.skip("wait", "already completed")
            return True
        if not self.options.wait:
            self.tracker.skip("wait", "--no-wait")
            self.tracker.skip("stage", "--no-wait")
            return False

        self.tracker.start("wait", run.status.replace("_", " "))
        while True:
            outcome = workflow.wait_for_run(
                full,
                run.id,
                self.config.org,
                self.config.run_poll,
                self.config.stuck_polls,
                on_update=lambda r: self.tracker.start("wait", r.status.replace("_", " ")),
            )
            if outcome.run is not None:
                self.result.run = outcome.run

            if outcome.ok:
                self.tracker.complete("wait", "success")
                return True

            if outcome.kind in (workflow.STUCK, workflow.NO_RUNNER):
                title = "No runner available" if outcome.kind == workflow.NO_RUNNER else "Run appears stuck"
                self.notify(title, f"Run {run.id} is still queued: {outcome.detail}.\n{run.url}")
                if self.confirm("Keep waiting for the run?", False):
                    self.tracker.start("wait", "waiting again")
                    continue
                self.tracker.skip("wait", outcome.detail)
                self.tracker.skip("stage", "init run not finished")
                recovery = [f"gh run watch {run.id} --repo {full}"] + self.stage_push_commands()
                if outcome.kind == workflow.NO_RUNNER:
                    recovery.insert(0, f"Start a self-hosted runner for the {self.config.org} organization")
                raise UserAborted(f"Stopped waiting for run {run.id}", recovery=recovery)

            if outcome.kind == workflow.TIMEOUT:
                exc = RemoteTimeoutError(
                    f"Run {run.id} did not finish: {outcome.detail}",
                    recovery=[f"gh run watch {run.id} --repo {full}"] + self.stage_push_commands(),
                )
            else:
                exc = WorkflowFailedError(
                    f"Run {run.id} finished with conclusion '{outcome.detail}'",
                    recovery=[
                        f"gh run view {run.id} --repo {full} --log-failed",
                        f"gh run rerun {run.id} --repo {full}",
                    ] + self.stage_push_commands(),
                )
            self._fail("wait", exc)
            raise exc

    def step_stage(self) -> None:
        stage = self.config.stage_branch
        if self.result.clone_path is None:
            self.tracker.skip("stage", "no local clone")
            return
        self.tracker.start("stage")
        source = gh.default_branch(self.target.full_repo) or self.config.source_branch
        try:
            sha = git_ops.sync_stage_branch(self.result.clone_path, source, stage)
        except GhCommandError as exc:
            self._fail("stage", exc)
            raise
        self.result.stage_sha = sha
        self.tracker.complete("stage", f"{stage} -> {sha[:7]}")

    def step_open(self) -> None:
        path = self.result.clone_path
        if path is None:
            self.tracker.skip("open", "no local clone")
            return
        choice = self.choose_editor() if self.choose_editor else None
        if not choice:
            self.tracker.skip("open", "not requested")
            return
        self.tracker.start("open", choice)
        if editor.open_path(choice, path):
            self.tracker.complete("open", editor.EDITOR_CHOICES.get(choice, choice))
        else:
            # Not fatal: the repository is already provisioned.
            self.tracker.error("open", f"could not launch {choice}")
