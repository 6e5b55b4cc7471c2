"""Open a local checkout in an editor or the platform file browser."""

import shutil
from pathlib import Path
from typing import Callable, Optional

from .gh import run_command
from .prereqs import detect_platform

EDITOR_CHOICES = {
    "cursor": "Cursor",
    "code": "Visual Studio Code",
    "explorer": "File browser",
}

FILE_BROWSERS = {"macos": "open", "windows": "explorer", "linux": "xdg-open"}


def launcher_for(choice: str, os_name: Optional[str] = None) -> Optional[str]:
    """Executable behind an editor choice, or None if it is not installed."""
    if choice == "explorer":
        browser = FILE_BROWSERS.get(os_name or detect_platform())
        if browser and shutil.which(browser):
            return browser
        return None
    if choice in EDITOR_CHOICES:
        return shutil.which(choice) and choice
    return None


def available_editors(os_name: Optional[str] = None) -> dict:
    return {key: label for key, label in EDITOR_CHOICES.items() if launcher_for(key, os_name)}


def resolve_editor(choice: str, interactive: bool, select: Callable[[dict], str]) -> Optional[str]:
    """Map the --editor option to a concrete choice.

    "auto" asks on a TTY and otherwise takes the first installed launcher.
    """
    if choice == "none":
        return None
    found = available_editors()
    if choice != "auto":
        return choice if choice in found else None
    if not found:
        return None
    if interactive and len(found) > 1:
        picked = select(found)
        return picked if picked in found else None
    return next(iter(found))


def open_path(choice: str, path: Path) -> bool:
    launcher = launcher_for(choice)
    if not launcher:
        return False
    result = run_command([launcher, str(path)])
    # explorer.exe exits 1 even when the window opened.
    return result.returncode == 0 or launcher == "explorer"
