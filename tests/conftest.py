from __future__ import annotations

from typing import Iterator

import pytest

from client_repo_cli import gh
from tests.utils import FakeCommands


@pytest.fixture()
def fake_commands(monkeypatch: pytest.MonkeyPatch) -> FakeCommands:
    fake = FakeCommands()
    monkeypatch.setattr(gh.subprocess, "run", fake)
    return fake


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    slept: list[float] = []
    monkeypatch.setattr("time.sleep", lambda seconds: slept.append(seconds))
    return slept


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("CLIENT_REPO_LOG_DIR", str(tmp_path / "logs"))
    for name in ("GH_TOKEN", "GITHUB_TOKEN", "CLIENT_REPO_ORG", "CLIENT_REPO_TEMPLATE", "CLIENT_REPO_INIT_WORKFLOW", "CLIENT_REPO_STAGE_BRANCH"):
        monkeypatch.delenv(name, raising=False)
    gh.configure()
    yield
    gh.configure()
