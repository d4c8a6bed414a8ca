# tests/unit/logging/test_unit_logger.py — v3
"""Tests for logging/logger.py — formatters and setup_logging."""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path

from adaptimg.config.settings import Settings
from adaptimg.logging.context import (
    clear_context,
    set_artifact_context,
    set_run_context,
    set_source_context,
)
from adaptimg.logging.logger import (
    JsonFormatter,
    TextFormatter,
    get_logger,
    setup_logging,
    setup_logging_from_settings,
)


def _record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("adaptimg.build", logging.INFO, __file__, 1, msg, (), None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


class TestJsonFormatter:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_basic_fields(self):
        out = json.loads(JsonFormatter().format(_record()))
        assert out["level"] == "INFO"
        assert out["logger"] == "adaptimg.build"
        assert out["message"] == "hello"
        assert "context" not in out
        assert "thread" not in out

    def test_includes_context_and_data(self):
        set_run_context("r1")
        set_artifact_context("hero-main", "mobile")
        out = json.loads(JsonFormatter().format(_record(data={"bytes": 10})))
        assert out["context"] == {
            "run_id": "r1",
            "placement": "hero-main",
            "viewport": "mobile",
        }
        assert out["data"] == {"bytes": 10}

    def test_worker_thread_name(self):
        out = json.loads(JsonFormatter().format(_record(threadName="adaptimg-build_0")))
        assert out["thread"] == "adaptimg-build_0"


class TestTextFormatter:
    def teardown_method(self):
        clear_context()

    def test_plain(self):
        text = TextFormatter().format(_record("started"))
        assert " build: started" in text
        assert "[" not in text

    def test_source_and_placement_label(self):
        set_source_context("team/portrait.jpg")
        set_artifact_context("og-image", "desktop")
        text = TextFormatter().format(_record("encoded"))
        assert "[portrait.jpg og-image/desktop]" in text
        assert text.endswith(": encoded")


class TestSetupLogging:
    def teardown_method(self):
        root = logging.getLogger("adaptimg")
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()

    def test_get_logger_namespace(self):
        assert get_logger("build").name == "adaptimg.build"

    def test_no_duplicate_handlers(self):
        setup_logging("DEBUG")
        root = setup_logging("DEBUG")
        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG

    def test_json_format_selected(self):
        root = setup_logging(log_format="json")
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_stream_receives_output(self):
        buf = io.StringIO()
        setup_logging(stream=buf)
        get_logger("build").info("hello %s", "world")
        assert "hello world" in buf.getvalue()

    def test_file_handler_is_json(self, tmp_path):
        root = setup_logging(log_file=str(tmp_path / "build.log"))
        assert len(root.handlers) == 2
        assert isinstance(root.handlers[1].formatter, JsonFormatter)

    def test_from_settings_verbose(self, tmp_path):
        settings = Settings(_env_file=None, log_level="WARNING", log_format="json")
        root = setup_logging_from_settings(settings)
        assert root.level == logging.WARNING
        root = setup_logging_from_settings(settings, verbose=True)
        assert root.level == logging.DEBUG

    def test_from_settings_log_file(self, tmp_path):
        settings = Settings(_env_file=None, log_file=tmp_path / "logs" / "a.log")
        root = setup_logging_from_settings(settings)
        assert len(root.handlers) == 2
        assert Path(tmp_path / "logs").is_dir()
