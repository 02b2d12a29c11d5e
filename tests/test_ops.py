"""
Tests for the ops package: run context and structured logging.
"""

import asyncio
import contextvars
import json
import logging
import sys
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from ops.logging_setup import ROOT_LOGGER, JSONFormatter, TextFormatter, configure_run_logging, setup_logging
from ops.run_context import RunContext, get_batch_id, get_component, set_batch_context


def _close_handlers():
    root = logging.getLogger(ROOT_LOGGER)
    for h in root.handlers:
        h.close()
    root.handlers.clear()


def _entries(log_path: Path) -> list[dict]:
    return [json.loads(line) for line in log_path.read_text().splitlines() if line.strip()]


class TestRunContext:
    def test_identity(self):
        a, b = RunContext(), RunContext()
        assert a.run_id != b.run_id
        assert a.batch_id == 0
        assert "T" in a.started_at

    def test_next_batch_updates_contextvars(self):
        async def run():
            ctx = RunContext()
            first = ctx.next_batch("filter")
            second = ctx.next_batch()
            return first, second, get_batch_id(), get_component()

        # asyncio.run gives the coroutine its own context copy
        assert asyncio.run(run()) == (1, 2, 2, "filter")

    def test_set_batch_context(self):
        async def run():
            set_batch_context(7, "agents")
            return get_batch_id(), get_component()

        assert asyncio.run(run()) == (7, "agents")


class TestStructuredLogging:
    def test_json_file_contains_run_id(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            try:
                setup_logging(run_id="test-run-id", json_mode=False, log_dir=tmpdir)
                logging.getLogger("recommender.test").info("test message")
                for h in logging.getLogger(ROOT_LOGGER).handlers:
                    h.flush()
                entries = _entries(Path(tmpdir) / "recommender.log")
            finally:
                _close_handlers()

        msg = next(e for e in entries if e["msg"] == "test message")
        assert msg["run_id"] == "test-run-id"
        assert msg["logger"] == "recommender.test"
        assert msg["level"] == "INFO"

    def test_batch_context_and_extras_injected(self):
        async def log_in_batch():
            RunContext().next_batch("filter")
            logging.getLogger("recommender.filter").warning(
                "batch message", extra={"condition_id": "0xabc", "agent": "SportsAgent"}
            )

        with tempfile.TemporaryDirectory() as tmpdir:
            try:
                setup_logging(run_id="test-run", log_dir=tmpdir)
                asyncio.run(log_in_batch())
                for h in logging.getLogger(ROOT_LOGGER).handlers:
                    h.flush()
                entries = _entries(Path(tmpdir) / "recommender.log")
            finally:
                _close_handlers()

        msg = next(e for e in entries if e["msg"] == "batch message")
        assert msg["batch_id"] == 1
        assert msg["component"] == "filter"
        assert msg["condition_id"] == "0xabc"
        assert msg["agent"] == "SportsAgent"

    def test_setup_twice_replaces_handlers(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            try:
                setup_logging(log_dir=tmpdir)
                setup_logging(log_dir=tmpdir)
                assert len(logging.getLogger(ROOT_LOGGER).handlers) == 2
            finally:
                _close_handlers()

    def test_formatter_includes_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.getLogger("recommender.test").makeRecord(
                "recommender.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        entry = json.loads(JSONFormatter(run_id="r").format(record))
        assert entry["msg"] == "failed"
        assert "ValueError: boom" in entry["exception"]

    def test_active_run_id_overrides_fallback(self):
        record = logging.getLogger("recommender.test").makeRecord(
            "recommender.test", logging.INFO, __file__, 1, "hello", (), None
        )
        formatter = JSONFormatter(run_id="fallback")

        def in_run():
            RunContext(run_id="active-run").activate()
            return json.loads(formatter.format(record))["run_id"]

        assert contextvars.copy_context().run(in_run) == "active-run"
        assert json.loads(formatter.format(record))["run_id"] == "fallback"

    def test_text_formatter_tags_batch(self):
        record = logging.getLogger("recommender.test").makeRecord(
            "recommender.test", logging.WARNING, __file__, 1, "slow batch", (), None
        )

        async def in_batch():
            ctx = RunContext()
            ctx.next_batch("filter")
            ctx.next_batch("filter")
            return TextFormatter().format(record)

        assert "recommender.test [filter#2]: slow batch" in asyncio.run(in_batch())
        assert "recommender.test: slow batch" in TextFormatter().format(record)


class TestConfigureRunLogging:
    def test_starts_and_activates_run(self):
        def start(tmpdir):
            run = configure_run_logging(log_dir=tmpdir)
            logging.getLogger("recommender.agents").info("agent ready")
            return run

        with tempfile.TemporaryDirectory() as tmpdir:
            try:
                run = contextvars.copy_context().run(start, tmpdir)
                for h in logging.getLogger(ROOT_LOGGER).handlers:
                    h.flush()
                entries = _entries(Path(tmpdir) / "recommender.log")
            finally:
                _close_handlers()

        assert any(e["msg"] == f"Run {run.run_id} started at {run.started_at}" for e in entries)
        ready = next(e for e in entries if e["msg"] == "agent ready")
        assert ready["run_id"] == run.run_id

    def test_adopts_existing_run(self):
        existing = RunContext(run_id="given-run")
        with tempfile.TemporaryDirectory() as tmpdir:
            try:
                run = contextvars.copy_context().run(configure_run_logging, existing, log_dir=tmpdir)
            finally:
                _close_handlers()
        assert run is existing
