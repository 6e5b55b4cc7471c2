"""Prerequisite tools: detection and OS package-manager installation."""

import platform
import shutil
import ssl
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import httpx
import truststore

from . import gh
from .config import (
    GH_APT_KEYRING_PATH,
    GH_APT_KEYRING_URL,
    GH_APT_SOURCE_PATH,
    GH_INSTALL_URL,
    GH_RPM_REPO_URL,
    GIT_INSTALL_URL,
    HOMEBREW_INSTALL_URL,
)
from .errors import GhCommandError, NoInstallerError, ProvisionError
from .logs import logger

ssl_context = truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)

INSTALL_URLS = {"git": GIT_INSTALL_URL, "gh": GH_INSTALL_URL}
WINGET_IDS = {"git": "Git.Git", "gh": "GitHub.cli"}

# Placeholder replaced with the path of a step's downloaded file.
DOWNLOAD = "{download}"


@dataclass
class InstallStep:
    description: str
    cmd: list[str]
    download_url: Optional[str] = None
    input_text: Optional[str] = None
    allow_failure: bool = False


@dataclass
class InstallPlan:
    tool: str
    manager: str
    steps: list[InstallStep] = field(default_factory=list)


def check_tool(tool: str) -> bool:
    """Check if a tool is on PATH."""
    return shutil.which(tool) is not None


def detect_platform(platform_name: Optional[str] = None) -> str:
    name = platform_name or sys.platform
    if name == "darwin":
        return "macos"
    if name.startswith("linux"):
        return "linux"
    if name in ("win32", "cygwin"):
        return "windows"
    return "unknown"


def _brew_path() -> str:
    found = shutil.which("brew")
    if found:
        return found
    if platform.machine() == "arm64":
        return "/opt/homebrew/bin/brew"
    return "/usr/local/bin/brew"


def _dpkg_architecture() -> str:
    try:
        result = gh.run_command(["dpkg", "--print-architecture"])
    except GhCommandError:
        return "amd64"
    return result.stdout.strip() if result.returncode == 0 and result.stdout.strip() else "amd64"


def _macos_plan(tool: str, available: Callable[[str], bool]) -> InstallPlan:
    steps = []
    if not available("brew"):
        steps.append(InstallStep("Install Homebrew", ["/bin/bash", DOWNLOAD], download_url=HOMEBREW_INSTALL_URL))
    steps.append(InstallStep(f"brew install {tool}", [_brew_path(), "install", tool]))
    return InstallPlan(tool, "brew", steps)


def _apt_plan(tool: str) -> InstallPlan:
    steps = []
    if tool == "gh":
        source = (
            f"deb [arch={_dpkg_architecture()} signed-by={GH_APT_KEYRING_PATH}] "
            "https://cli.github.com/packages stable main\n"
        )
        steps += [
            InstallStep(
                "Add GitHub CLI apt keyring",
                ["sudo", "install", "-m", "0644", DOWNLOAD, GH_APT_KEYRING_PATH],
                download_url=GH_APT_KEYRING_URL,
            ),
            InstallStep("Add GitHub CLI apt source", ["sudo", "tee", GH_APT_SOURCE_PATH], input_text=source),
        ]
    steps += [
        InstallStep("apt-get update", ["sudo", "apt-get", "update"]),
        InstallStep(f"apt-get install {tool}", ["sudo", "apt-get", "install", "-y", tool]),
    ]
    return InstallPlan(tool, "apt-get", steps)


def _dnf_plan(tool: str) -> InstallPlan:
    steps = []
    if tool == "gh":
        steps += [
            InstallStep("Install dnf config-manager", ["sudo", "dnf", "install", "-y", "dnf-command(config-manager)"], allow_failure=True),
            InstallStep("Add GitHub CLI repository", ["sudo", "dnf", "config-manager", "--add-repo", GH_RPM_REPO_URL]),
        ]
    steps.append(InstallStep(f"dnf install {tool}", ["sudo", "dnf", "install", "-y", tool]))
    return InstallPlan(tool, "dnf", steps)


def _yum_plan(tool: str) -> InstallPlan:
    steps = []
    if tool == "gh":
        steps.append(InstallStep("Add GitHub CLI repository", ["sudo", "yum-config-manager", "--add-repo", GH_RPM_REPO_URL]))
    steps.append(InstallStep(f"yum install {tool}", ["sudo", "yum", "install", "-y", tool]))
    return InstallPlan(tool, "yum", steps)


def _windows_plan(tool: str, available: Callable[[str], bool]) -> Optional[InstallPlan]:
    if available("winget"):
        cmd = ["winget", "install", "--id", WINGET_IDS[tool], "-e", "--source", "winget"]
        return InstallPlan(tool, "winget", [InstallStep(f"winget install {WINGET_IDS[tool]}", cmd)])
    if available("choco"):
        return InstallPlan(tool, "choco", [InstallStep(f"choco install {tool}", ["choco", "install", tool, "-y"])])
    if available("scoop"):
        return InstallPlan(tool, "scoop", [InstallStep(f"scoop install {tool}", ["scoop", "install", tool])])
    return None


def install_plan(tool: str, os_name: str, available: Callable[[str], bool] = check_tool) -> InstallPlan:
    """Pick the package manager for ``tool`` on ``os_name`` and list its steps.

    Raises NoInstallerError when nothing suitable is installed.
    """
    if tool not in INSTALL_URLS:
        raise ValueError(f"Unsupported tool '{tool}'")

    plan: Optional[InstallPlan] = None
    if os_name == "macos":
        plan = _macos_plan(tool, available)
    elif os_name == "linux":
        if available("apt-get"):
            plan = _apt_plan(tool)
        elif available("dnf"):
            plan = _dnf_plan(tool)
        elif available("yum"):
            plan = _yum_plan(tool)
    elif os_name == "windows":
        plan = _windows_plan(tool, available)

    if plan is None:
        raise NoInstallerError(
            f"Could not find a package manager to install {tool}",
            recovery=[f"Install {tool} manually: {INSTALL_URLS[tool]}"],
        )
    return plan


def download(url: str, dest: Path, client: Optional[httpx.Client] = None) -> Path:
    if client is None:
        client = httpx.Client(verify=ssl_context)
    logger.debug("download: %s -> %s", url, dest)
    response = client.get(url, timeout=60, follow_redirects=True)
    response.raise_for_status()
    dest.write_bytes(response.content)
    return dest


def run_plan(plan: InstallPlan, client: Optional[httpx.Client] = None) -> None:
    with tempfile.TemporaryDirectory(prefix="client-repo-") as tmp:
        for index, step in enumerate(plan.steps):
            cmd = list(step.cmd)
            if step.download_url:
                try:
                    target = download(step.download_url, Path(tmp) / f"step-{index}", client=client)
                except httpx.HTTPError as exc:
                    raise ProvisionError(
                        f"{step.description}: download failed ({exc})",
                        recovery=[f"Install {plan.tool} manually: {INSTALL_URLS[plan.tool]}"],
                    ) from exc
                cmd = [str(target) if part == DOWNLOAD else part for part in cmd]
            result = gh.run_command(cmd, interactive=True, input_text=step.input_text)
            if result.returncode != 0 and not step.allow_failure:
                raise ProvisionError(
                    f"{step.description} failed with exit code {result.returncode}",
                    recovery=[f"Install {plan.tool} manually: {INSTALL_URLS[plan.tool]}"],
                )


def ensure_tool(tool: str, confirm: Callable[[InstallPlan], bool]) -> str:
    """Make sure ``tool`` is on PATH, installing it when the user agrees.

    Returns "present" or "installed".
    """
    if check_tool(tool):
        return "present"

    plan = install_plan(tool, detect_platform())
    if not confirm(plan):
        raise ProvisionError(
            f"{tool} is required",
            recovery=[f"Install {tool} manually: {INSTALL_URLS[tool]}"],
        )
    run_plan(plan)
    if not check_tool(tool):
        raise ProvisionError(
            f"{tool} was installed but is not on PATH yet",
            recovery=["Open a new terminal and run this command again"],
        )
    return "installed"


def ensure_gh_auth(login: Callable[[], bool]) -> str:
    """Return "authenticated" or "logged-in"; ``login`` runs the interactive flow."""
    if gh.auth_ok():
        return "authenticated"
    if not login() or not gh.auth_ok():
        raise ProvisionError(
            "You are not logged in to GitHub CLI",
            recovery=["gh auth login"],
        )
    return "logged-in"
