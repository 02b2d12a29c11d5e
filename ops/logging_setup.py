"""
Structured logging for recommender runs.

File handler always writes JSON lines to {LOG_DIR}/recommender.log with rotation.
Console handler is text by default (JSON when JSON_LOGGING is set) at LOG_LEVEL.

Records are stamped from the active RunContext: run_id, batch_id and component
come from contextvars, so two filters running in one process log under their
own run ids. Entry point for a process:

    run = configure_run_logging()
    flt = MarketFilter.from_config(run_context=run)

or simply MarketFilter.from_config(configure_logging=True).
"""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from config import JSON_LOGGING, LOG_DIR, LOG_FILE, LOG_LEVEL
from ops.run_context import RunContext, get_batch_id, get_component, get_run_id

ROOT_LOGGER = "recommender"

# Fields callers attach with extra={...}
_EXTRA_FIELDS = ("condition_id", "agent", "task_id", "attempt", "server")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with run context and known extras."""

    def __init__(self, run_id: str = ""):
        super().__init__()
        self.default_run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "run_id": get_run_id() or self.default_run_id,
            "batch_id": get_batch_id(),
            "component": get_component(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update({key: getattr(record, key) for key in _EXTRA_FIELDS if getattr(record, key, None) is not None})
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Console lines; tagged with component#batch while a batch is running."""

    def __init__(self):
        super().__init__(fmt="%(asctime)s %(levelname)s %(name)s%(batch_tag)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        component, batch = get_component(), get_batch_id()
        record.batch_tag = f" [{component or 'batch'}#{batch}]" if batch else ""
        return super().format(record)


def setup_logging(
    run_id: str = "",
    json_mode: bool = JSON_LOGGING,
    log_dir: str = str(LOG_DIR),
    log_file: str = LOG_FILE,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console_level: int | str = LOG_LEVEL,
) -> logging.Logger:
    """
    Configure the recommender logger tree.

    run_id is the fallback for records logged outside any activated RunContext.
    Safe to call more than once; handlers are replaced, not stacked.
    """
    Path(log_dir).mkdir(parents=True, exist_ok=True)

    root = logging.getLogger(ROOT_LOGGER)
    for old in root.handlers:
        old.close()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    fh = RotatingFileHandler(str(Path(log_dir) / log_file), maxBytes=max_bytes, backupCount=backup_count)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(JSONFormatter(run_id=run_id))
    root.addHandler(fh)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(JSONFormatter(run_id=run_id) if json_mode else TextFormatter())
    root.addHandler(ch)

    root.info(
        "Logging initialized: run_id=%s json_mode=%s log_file=%s",
        run_id, json_mode, Path(log_dir) / log_file,
    )
    return root


def configure_run_logging(run: Optional[RunContext] = None, **options) -> RunContext:
    """Start (or adopt) a run, install handlers stamped with its id, and activate it."""
    run = run or RunContext()
    setup_logging(run_id=run.run_id, **options)
    run.activate()
    logging.getLogger(ROOT_LOGGER).info("Run %s started at %s", run.run_id, run.started_at)
    return run
