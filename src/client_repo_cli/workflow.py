"""Workflow run discovery and completion polling with stuck detection."""

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from . import gh
from .config import PollSettings
from .errors import GhCommandError, RemoteTimeoutError
from .gh import Runner, RunJob, WorkflowRun
from .logs import logger

QUEUED_STATES = {"queued", "waiting", "pending", "requested"}
CLOCK_SKEW = timedelta(seconds=60)

SUCCESS = "success"
FAILURE = "failure"
STUCK = "stuck"
NO_RUNNER = "no_runner"
TIMEOUT = "timeout"


@dataclass
class RunOutcome:
    kind: str
    run: Optional[WorkflowRun] = None
    detail: str = ""
    waiting_jobs: list[RunJob] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.kind == SUCCESS


def latest_init_state(full_repo: str, workflow: str) -> tuple[str, Optional[WorkflowRun]]:
    """Classify the most recent run of ``workflow``.

    Returns ("succeeded", run), ("running", run) or ("none", None). A latest
    run that failed counts as "none" so initialization is dispatched again.
    """
    runs = gh.list_runs(full_repo, workflow, limit=5)
    if not runs:
        return "none", None
    latest = runs[0]
    if latest.succeeded:
        return "succeeded", latest
    if not latest.completed:
        return "running", latest
    return "none", None


def dispatched_run_ids(full_repo: str, workflow: str) -> set[int]:
    """Ids of the ``workflow_dispatch`` runs listed right now."""
    return {run.id for run in gh.list_runs(full_repo, workflow, event="workflow_dispatch")}


def find_dispatched_run(
    full_repo: str,
    workflow: str,
    not_before: datetime,
    poll: PollSettings,
    known_ids: frozenset[int] | set[int] = frozenset(),
) -> WorkflowRun:
    """Wait for the run created by a ``workflow_dispatch`` at ``not_before``.

    Runs in ``known_ids`` were listed before the dispatch and never match,
    even when they fall inside the clock skew window.
    """
    threshold = not_before - CLOCK_SKEW
    for attempt in range(1, poll.attempts + 1):
        for run in gh.list_runs(full_repo, workflow, event="workflow_dispatch"):
            if run.id in known_ids:
                continue
            if run.created_at and run.created_at >= threshold:
                return run
        logger.debug("dispatched run not listed yet (%s/%s)", attempt, poll.attempts)
        if attempt < poll.attempts:
            time.sleep(poll.interval)
    raise RemoteTimeoutError(
        f"Dispatched {workflow} but no run appeared",
        recovery=[f"gh run list --repo {full_repo} --workflow {workflow}"],
    )


def diagnose_queue(jobs: list[RunJob], runners: Optional[list[Runner]]) -> tuple[str, str]:
    """Explain why queued jobs have not been picked up."""
    waiting = [job for job in jobs if job.status != "completed" and not job.runner_name]
    if not waiting:
        return STUCK, "the run has not created any jobs yet"
    self_hosted = [job for job in waiting if job.self_hosted]
    if not self_hosted:
        return STUCK, "jobs are queued on GitHub-hosted runners"
    if runners is None:
        return STUCK, "jobs need a self-hosted runner and the organization runner list is not readable"

    online = [runner for runner in runners if runner.online]
    if not online:
        return NO_RUNNER, "no self-hosted runner in the organization is online"

    unmatched = [job for job in self_hosted if not any(runner.can_run(job) for runner in online)]
    if unmatched:
        labels = ", ".join(sorted({label for job in unmatched for label in job.labels}))
        return NO_RUNNER, f"no online self-hosted runner carries the labels [{labels}]"

    if all(runner.busy for runner in online if any(runner.can_run(job) for job in self_hosted)):
        return STUCK, "matching self-hosted runners are online but busy"
    return STUCK, "matching self-hosted runners are online but have not picked up the job"


def wait_for_run(
    full_repo: str,
    run_id: int,
    org: str,
    poll: PollSettings,
    stuck_polls: int,
    on_update: Optional[Callable[[WorkflowRun], None]] = None,
) -> RunOutcome:
    """Poll a run until it completes, times out or is stuck in the queue.

    A run counts as stuck once it has been queued with no job assigned to a
    runner for ``stuck_polls`` consecutive polls.
    """
    queued_streak = 0
    last_status = None
    run: Optional[WorkflowRun] = None
    jobs: list[RunJob] = []

    for attempt in range(1, poll.attempts + 1):
        try:
            run = gh.view_run(full_repo, run_id)
        except GhCommandError as exc:
            # A single failed read is not a verdict on the run.
            logger.debug("run view failed on attempt %s: %s", attempt, exc)
            run = None

        if run is not None:
            if run.status != last_status:
                last_status = run.status
                if on_update:
                    on_update(run)

            if run.completed:
                if run.conclusion == "success":
                    return RunOutcome(SUCCESS, run)
                return RunOutcome(FAILURE, run, detail=run.conclusion or "unknown")

            if run.status in QUEUED_STATES:
                jobs = gh.run_jobs(full_repo, run_id)
                if any(job.runner_name for job in jobs):
                    queued_streak = 0
                else:
                    queued_streak += 1
            else:
                queued_streak = 0

            if queued_streak >= stuck_polls:
                kind, detail = diagnose_queue(jobs, gh.self_hosted_runners(org))
                waiting = [job for job in jobs if not job.runner_name]
                return RunOutcome(kind, run, detail=detail, waiting_jobs=waiting)

        if attempt < poll.attempts:
            time.sleep(poll.interval)

    return RunOutcome(TIMEOUT, run, detail=f"run did not finish after {poll.attempts} checks")
