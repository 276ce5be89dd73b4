"""Tests for loguru setup and the centered console."""

from __future__ import annotations

import io
import json

from loguru import logger

from scriptsync.console import Console
from scriptsync.logging import setup_logging


def test_json_logs(capsys) -> None:
    setup_logging(json_logs=True, log_level="INFO")
    logger.bind(script_id="abc").info("Pushed {} files", 3)
    logger.debug("hidden")

    lines = capsys.readouterr().err.strip().splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["level"] == "INFO"
    assert entry["message"] == "Pushed 3 files"
    assert entry["script_id"] == "abc"


def test_json_logs_keep_braces(capsys) -> None:
    setup_logging(json_logs=True, log_level="INFO")
    logger.info("manifest {}", '{"timeZone": "Etc/UTC"}')
    entry = json.loads(capsys.readouterr().err.strip())
    assert entry["message"] == 'manifest {"timeZone": "Etc/UTC"}'


def test_dev_logs_respect_level(capsys) -> None:
    setup_logging(log_level="WARNING")
    logger.info("quiet")
    logger.warning("loud")
    err = capsys.readouterr().err
    assert "quiet" not in err
    assert "loud" in err


def test_console_channels() -> None:
    out, err = io.StringIO(), io.StringIO()
    console = Console(width=20, out=out, err=err)
    console.print_result("done", True)
    console.print_result("failed", False)
    assert out.getvalue() == "done".center(20).rstrip() + "\n"
    assert err.getvalue() == "failed".center(20).rstrip() + "\n"


def test_console_centers_each_line() -> None:
    out = io.StringIO()
    Console(width=10, out=out).print_centered("a\nbbb")
    assert out.getvalue().splitlines() == ["    a", "   bbb"]
