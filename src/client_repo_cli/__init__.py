#!/usr/bin/env python3
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "typer",
#     "rich",
#     "platformdirs",
#     "readchar",
#     "httpx",
#     "truststore",
# ]
# ///
"""
Create Client Repo - provision a client website repository from the template

Usage:
    create-client-repo create --domain acme-hvac.com
    create-client-repo check
    create-client-repo slug acme-hvac.co.uk
"""

import sys
from pathlib import Path
from typing import Optional

import typer
from rich.align import Align
from rich.live import Live
from rich.panel import Panel
from typer.core import TyperGroup

from . import gh
from .config import ProvisionConfig, github_token as resolve_token
from .editor import EDITOR_CHOICES, FILE_BROWSERS, resolve_editor
from .errors import InvalidDomainError, ProvisionError, UserAborted
from .logs import init_logging, log_file, logger, run_id
from .prereqs import InstallPlan, check_tool, detect_platform, ensure_gh_auth, ensure_tool
from .provision import ProvisionOptions, Provisioner, plan_target
from .slug import is_recognized_suffix
from .ui import StepTracker, console, key_value_grid, select_with_arrows, show_banner

EDITOR_OPTIONS = ["auto", *EDITOR_CHOICES, "none"]


class BannerGroup(TyperGroup):
    """Custom group that shows banner before help."""

    def format_help(self, ctx, formatter):
        show_banner()
        super().format_help(ctx, formatter)


app = typer.Typer(
    name="create-client-repo",
    help="Create a client website repository from the template and deploy it to staging",
    add_completion=False,
    invoke_without_command=True,
    cls=BannerGroup,
)


@app.callback()
def callback(ctx: typer.Context):
    """Show banner when no subcommand is provided."""
    if ctx.invoked_subcommand is None and "--help" not in sys.argv and "-h" not in sys.argv:
        show_banner()
        console.print(Align.center("[dim]Run 'create-client-repo --help' for usage information[/dim]"))
        console.print()


def _is_interactive() -> bool:
    return sys.stdin.isatty()


def print_recovery(exc: ProvisionError) -> None:
    if not exc.recovery:
        return
    lines = "\n".join(f"  {line}" for line in exc.recovery)
    console.print(Panel(f"To finish by hand:\n\n{lines}", title="Manual Recovery", border_style="yellow", padding=(1, 2)))


def print_debug_environment() -> None:
    env_pairs = [
        ("Python", sys.version.split()[0]),
        ("Platform", sys.platform),
        ("CWD", str(Path.cwd())),
        ("Run id", run_id()),
        ("Log file", str(log_file() or "-")),
    ]
    label_width = max(len(k) for k, _ in env_pairs)
    env_lines = [f"{k.ljust(label_width)} → [bright_black]{v}[/bright_black]" for k, v in env_pairs]
    console.print(Panel("\n".join(env_lines), title="Debug Environment", border_style="magenta"))


def ensure_prerequisites(assume_yes: bool) -> None:
    """Install git/gh when missing and make sure gh is logged in."""
    interactive = _is_interactive()

    def confirm_install(plan: InstallPlan) -> bool:
        steps = "\n".join(f"  • {step.description}" for step in plan.steps)
        console.print(Panel(
            f"[cyan]{plan.tool}[/cyan] is not installed. It will be installed with [cyan]{plan.manager}[/cyan]:\n\n{steps}",
            title="[yellow]Missing Tool[/yellow]",
            border_style="yellow",
            padding=(1, 2),
        ))
        if assume_yes:
            return True
        return interactive and typer.confirm(f"Install {plan.tool} now?", default=True)

    def login() -> bool:
        console.print("[yellow]You are not logged in to GitHub CLI.[/yellow]")
        if not interactive:
            return False
        console.print("This will open a browser window for authentication.")
        if not typer.confirm("Start GitHub authentication now?", default=True):
            return False
        return gh.auth_login()

    console.print("[bold]Checking prerequisites...[/bold]")
    for tool in ("git", "gh"):
        status = ensure_tool(tool, confirm_install)
        version = gh.version(tool)
        console.print(f"[green]✓[/green] {tool} {status} [dim]{version}[/dim]")
    status = ensure_gh_auth(login)
    console.print(f"[green]✓[/green] GitHub CLI {status}")
    console.print()


@app.command()
def create(
    domain: Optional[str] = typer.Option(None, "--domain", "-d", help="Production domain, e.g. acme-hvac.com (prompted when omitted)"),
    org: Optional[str] = typer.Option(None, "--org", help="GitHub organization that owns the new repository"),
    template: Optional[str] = typer.Option(None, "--template", help="Template repository in OWNER/REPO form"),
    dest: Path = typer.Option(Path("."), "--dest", help="Directory the repository is cloned into"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to confirmations (reuse existing repository, install tools)"),
    no_clone: bool = typer.Option(False, "--no-clone", help="Do not clone locally; also skips the stage branch push"),
    no_wait: bool = typer.Option(False, "--no-wait", help="Dispatch the init workflow without waiting for it"),
    editor: str = typer.Option("auto", "--editor", help=f"Open the clone afterwards: {', '.join(EDITOR_OPTIONS)}"),
    github_token: Optional[str] = typer.Option(None, "--github-token", help="GitHub token for gh (or set GH_TOKEN or GITHUB_TOKEN environment variable)"),
    debug: bool = typer.Option(False, "--debug", help="Echo every git/gh command and show diagnostics on failure"),
):
    """
    Create a client repository and drive it to a staging deployment.

    This command will:
    1. Check git and the GitHub CLI (installing them if needed) and gh login
    2. Derive the client slug and repository name from the production domain
    3. Create the repository from the template (or reuse an existing one)
    4. Set the PROD_DOMAIN variable and clone the repository
    5. Run the infrastructure initialization workflow and wait for it
    6. Force-push the stage branch to trigger the staging deployment

    Every step checks remote state first, so re-running after an
    interruption picks up where the previous run stopped.

    Examples:
        create-client-repo create
        create-client-repo create --domain acme-hvac.com
        create-client-repo create -d acme-hvac.co.uk --yes --editor none
        create-client-repo create -d acme-hvac.com --no-clone --no-wait
    """
    show_banner()

    if editor not in EDITOR_OPTIONS:
        console.print(f"[red]Error:[/red] Invalid editor '{editor}'. Choose from: {', '.join(EDITOR_OPTIONS)}")
        raise typer.Exit(1)

    init_logging()
    gh.configure(token=resolve_token(github_token), echo=debug)
    config = ProvisionConfig.from_env().with_overrides(org=org, template=template)
    interactive = _is_interactive()

    try:
        ensure_prerequisites(yes)
    except ProvisionError as exc:
        console.print(Panel(str(exc), title="[red]Prerequisites[/red]", border_style="red", padding=(1, 2)))
        print_recovery(exc)
        raise typer.Exit(1)

    if not domain and interactive:
        domain = typer.prompt("Production domain (e.g., acme-hvac.com)", default="", show_default=False)
    try:
        target = plan_target(domain or "", config.org)
    except InvalidDomainError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)

    if not is_recognized_suffix(target.domain):
        console.print(f"[yellow]Warning:[/yellow] '{target.domain}' has no recognized suffix; using it unchanged as the slug")

    options = ProvisionOptions(dest=dest.resolve(), clone=not no_clone, wait=not no_wait)
    summary = key_value_grid([
        ("Domain", target.domain),
        ("Client slug", target.slug),
        ("Repository", target.full_repo),
        ("Template", config.template),
        ("Clone path", str(options.dest / target.repo_name) if options.clone else "[dim]skipped[/dim]"),
    ])
    console.print(Panel(summary, title="Summary", border_style="cyan", padding=(1, 2)))

    if not yes:
        if not interactive or not typer.confirm("Proceed with repository creation?", default=False):
            console.print("Aborted.")
            raise typer.Exit(0)

    logger.debug("provisioning %s for %s", target.full_repo, target.domain)
    tracker = StepTracker(f"Provision {target.full_repo}")

    with Live(tracker.render(), console=console, refresh_per_second=8, transient=True) as live:
        tracker.attach_refresh(lambda: live.update(tracker.render()))

        def confirm(question: str, assumed: bool) -> bool:
            if yes and assumed:
                return True
            if not interactive:
                return assumed
            live.stop()
            console.print(tracker.render())
            try:
                return typer.confirm(question, default=assumed)
            finally:
                live.start()

        def notify(title: str, body: str) -> None:
            live.console.print(Panel(body, title=f"[yellow]{title}[/yellow]", border_style="yellow", padding=(1, 2)))

        def choose_editor() -> Optional[str]:
            if editor == "none":
                return None
            live.stop()
            try:
                return resolve_editor(
                    editor,
                    interactive and not yes,
                    select=lambda found: select_with_arrows({**found, "skip": "Do not open"}, "Open the repository in:", next(iter(found))),
                )
            finally:
                live.start()

        provisioner = Provisioner(target, config, options, tracker, confirm=confirm, notify=notify, choose_editor=choose_editor)
        try:
            result = provisioner.run()
        except UserAborted as exc:
            live.stop()
            console.print(tracker.render())
            console.print(f"\n[yellow]{exc}[/yellow]")
            print_recovery(exc)
            raise typer.Exit(0)
        except ProvisionError as exc:
            live.stop()
            console.print(tracker.render())
            console.print(Panel(str(exc), title="Failure", border_style="red", padding=(1, 2)))
            print_recovery(exc)
            if debug:
                print_debug_environment()
            raise typer.Exit(1)
        except Exception as exc:
            logger.exception("unexpected failure")
            live.stop()
            console.print(tracker.render())
            console.print(Panel(f"Provisioning failed: {exc}", title="Failure", border_style="red"))
            if debug:
                print_debug_environment()
            raise typer.Exit(1)

    console.print(tracker.render())
    console.print("\n[bold green]Repository ready.[/bold green]")

    steps_lines = [f"Repository URL: [cyan]{target.url}[/cyan]", ""]
    if result.run is not None and result.run.url:
        steps_lines.append(f"Init workflow run: [cyan]{result.run.url}[/cyan]")
    if result.stage_sha:
        steps_lines.append(f"Stage deployment triggered at [cyan]{result.stage_sha[:7]}[/cyan]")
    else:
        steps_lines.append(f"Deploy to staging: [cyan]git push --force origin {config.source_branch}:{config.stage_branch}[/cyan]")
    steps_lines.append(f"Check workflow status: [cyan]gh run list --repo {target.full_repo}[/cyan]")

    console.print()
    console.print(Panel("\n".join(steps_lines), title="Next Steps", border_style="cyan", padding=(1, 2)))


@app.command()
def check():
    """Check that all required tools are installed."""
    show_banner()
    console.print("[bold]Checking for installed tools...[/bold]\n")

    browser = FILE_BROWSERS.get(detect_platform(), "xdg-open")
    tracker = StepTracker("Check Available Tools")
    tracker.add("git", "Git version control")
    tracker.add("gh", "GitHub CLI")
    tracker.add("gh-auth", "GitHub CLI login")
    tracker.add("cursor", "Cursor")
    tracker.add("code", "Visual Studio Code")
    tracker.add(browser, "File browser")

    git_ok = _check_tool_for_tracker("git", tracker)
    gh_ok = _check_tool_for_tracker("gh", tracker)
    if gh_ok and gh.auth_ok():
        tracker.complete("gh-auth", "logged in")
    elif gh_ok:
        tracker.error("gh-auth", "run: gh auth login")
    else:
        tracker.skip("gh-auth", "gh not installed")
    _check_tool_for_tracker("cursor", tracker)
    _check_tool_for_tracker("code", tracker)
    # File browsers have no --version flag.
    _check_tool_for_tracker(browser, tracker, show_version=False)

    console.print(tracker.render())

    if git_ok and gh_ok:
        console.print("\n[bold green]Ready to create client repositories![/bold green]")
    else:
        console.print("\n[dim]Tip: 'create-client-repo create' installs missing tools for you[/dim]")


def _check_tool_for_tracker(tool: str, tracker: StepTracker, show_version: bool = True) -> bool:
    """Check if a tool is installed and update tracker."""
    if check_tool(tool):
        tracker.complete(tool, (show_version and gh.version(tool)) or "available")
        return True
    tracker.error(tool, "not found")
    return False


@app.command()
def slug(
    domain: str = typer.Argument(..., help="Production domain, e.g. acme-hvac.com"),
    org: Optional[str] = typer.Option(None, "--org", help="GitHub organization"),
):
    """Show the client slug and repository name derived from a domain."""
    config = ProvisionConfig.from_env().with_overrides(org=org)
    try:
        target = plan_target(domain, config.org)
    except InvalidDomainError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)
    console.print(key_value_grid([
        ("Domain", target.domain),
        ("Client slug", target.slug),
        ("Repository", target.full_repo),
    ]))
    if not is_recognized_suffix(target.domain):
        console.print(f"[yellow]Warning:[/yellow] '{target.domain}' has no recognized suffix")


def main():
    app()


if __name__ == "__main__":
    main()
