"""Per-run debug transcript.

The console is rich-only. Every external command, its exit code and stderr
go to a rotating log file under the user log directory so a failed run can
be diagnosed afterwards.
"""

import logging
import os
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from platformdirs import user_log_dir

APP_NAME = "create-client-repo"
ENV_LOG_DIR = "CLIENT_REPO_LOG_DIR"

logger = logging.getLogger("client_repo_cli")

_RUN_ID = ""
_LOG_FILE: Optional[Path] = None


def log_dir() -> Path:
    if env_dir := os.environ.get(ENV_LOG_DIR):
        return Path(env_dir)
    return Path(user_log_dir(APP_NAME, appauthor=False))


def init_logging(run_id: Optional[str] = None) -> str:
    """Attach the file handler once per process and return the run id."""
    global _RUN_ID, _LOG_FILE
    if _RUN_ID:
        return _RUN_ID

    rid = run_id or uuid.uuid4().hex[:8]
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    try:
        directory = log_dir()
        directory.mkdir(parents=True, exist_ok=True)
        logfile = directory / f"{APP_NAME}-{rid}.log"
        handler: logging.Handler = RotatingFileHandler(logfile, maxBytes=2 * 1024 * 1024, backupCount=3, encoding="utf-8")
        _LOG_FILE = logfile
    except OSError:
        # Read-only home directories still get a working CLI.
        handler = logging.NullHandler()
        _LOG_FILE = None

    handler.setFormatter(
        logging.Formatter(
            fmt=f"%(asctime)s %(levelname)s [{rid}] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    )
    logger.addHandler(handler)
    _RUN_ID = rid
    logger.debug("Logging initialized. file=%s", _LOG_FILE)
    return rid


def log_file() -> Optional[Path]:
    return _LOG_FILE


def run_id() -> str:
    return _RUN_ID or "--------"
