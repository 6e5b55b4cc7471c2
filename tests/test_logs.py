from __future__ import annotations

from pathlib import Path

from client_repo_cli import logs


def test_log_dir_honours_environment(tmp_path: Path, monkeypatch):
    monkeypatch.setenv(logs.ENV_LOG_DIR, str(tmp_path / "custom"))
    assert logs.log_dir() == tmp_path / "custom"


def test_init_logging_is_idempotent():
    first = logs.init_logging()
    assert logs.init_logging("ignored") == first
    assert logs.run_id() == first
