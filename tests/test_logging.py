"""Tests for invoice2storage.logging."""

from __future__ import annotations

import json
import logging

import structlog

from invoice2storage.logging import setup_logging, verbosity_to_level


class TestSetupLogging:
    def test_single_handler_at_level(self):
        root = logging.getLogger()
        root.addHandler(logging.StreamHandler())
        setup_logging(json=False, level="warning")
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1

    def test_json_lines_on_stderr(self, capsys):
        setup_logging(json=True, level="DEBUG")
        structlog.get_logger("invoice2storage.test").info("attachment_stored", path="bob/a.pdf")

        captured = capsys.readouterr()
        assert captured.out == ""
        record = json.loads(captured.err.strip().splitlines()[-1])
        assert record["event"] == "attachment_stored"
        assert record["path"] == "bob/a.pdf"
        assert record["level"] == "info"

    def test_console_below_level_suppressed(self, capsys):
        setup_logging(json=False, level="CRITICAL")
        structlog.get_logger("invoice2storage.test").error("upload_failed")
        assert "upload_failed" not in capsys.readouterr().err


class TestVerbosityToLevel:
    def test_default(self):
        assert verbosity_to_level(0, False) == "INFO"

    def test_verbose(self):
        assert verbosity_to_level(2, False) == "DEBUG"

    def test_quiet_wins(self):
        assert verbosity_to_level(3, True) == "CRITICAL"
