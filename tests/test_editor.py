from __future__ import annotations

from pathlib import Path

import pytest

from client_repo_cli import editor
from tests.utils import completed


@pytest.fixture()
def installed(monkeypatch: pytest.MonkeyPatch):
    names: set[str] = set()
    monkeypatch.setattr(editor.shutil, "which", lambda name: f"/usr/bin/{name}" if name in names else None)
    monkeypatch.setattr(editor, "detect_platform", lambda: "linux")
    return names


def test_explorer_maps_to_platform_browser(installed):
    installed.add("xdg-open")
    assert editor.launcher_for("explorer") == "xdg-open"
    assert editor.launcher_for("explorer", "windows") is None


def test_available_editors_in_preference_order(installed):
    installed.update({"code", "cursor"})
    assert list(editor.available_editors()) == ["cursor", "code"]


def test_resolve_none(installed):
    installed.add("code")
    assert editor.resolve_editor("none", interactive=True, select=lambda found: pytest.fail("no prompt")) is None


def test_resolve_explicit_missing_editor(installed):
    installed.add("code")
    assert editor.resolve_editor("cursor", interactive=False, select=lambda found: "cursor") is None
    assert editor.resolve_editor("code", interactive=False, select=lambda found: "cursor") == "code"


def test_resolve_auto_non_interactive_takes_first(installed):
    installed.update({"code", "xdg-open"})
    assert editor.resolve_editor("auto", interactive=False, select=lambda found: pytest.fail("no prompt")) == "code"


def test_resolve_auto_interactive_asks(installed):
    installed.update({"cursor", "code"})
    assert editor.resolve_editor("auto", interactive=True, select=lambda found: "code") == "code"
    assert editor.resolve_editor("auto", interactive=True, select=lambda found: "skip") is None


def test_resolve_auto_nothing_installed(installed):
    assert editor.resolve_editor("auto", interactive=True, select=lambda found: pytest.fail("no prompt")) is None


def test_open_path_runs_launcher(installed, fake_commands, tmp_path: Path):
    installed.add("code")
    fake_commands.script(["code"], completed(0))
    assert editor.open_path("code", tmp_path)
    assert fake_commands.calls == [["code", str(tmp_path)]]


def test_open_path_missing_launcher(installed, tmp_path: Path):
    assert not editor.open_path("cursor", tmp_path)
