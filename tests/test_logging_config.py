"""Tests for logging setup and the performance decorator."""

import inspect
import json
import logging
import sys
from pathlib import Path

import pytest

from utils.logging_config import ROOT_LOGGER_NAME, StructuredFormatter, log_performance, setup_logging


@pytest.fixture
def clean_logger():
    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()


class TestSetupLogging:
    def test_creates_log_files(self, tmp_path: Path, clean_logger: None) -> None:
        logger = setup_logging(level="DEBUG", log_dir=tmp_path, console=False)

        logging.getLogger(f"{ROOT_LOGGER_NAME}.test").error(
            "model failed", extra={"extra_data": {"model": "gpt-4o"}}
        )
        for handler in logger.handlers:
            handler.flush()

        assert logger.level == logging.DEBUG
        assert (tmp_path / "evalarena.log").exists()
        assert "model failed" in (tmp_path / "evalarena.error.log").read_text()
        record = json.loads((tmp_path / "evalarena.json.log").read_text().splitlines()[-1])
        assert record["message"] == "model failed"
        assert record["data"] == {"model": "gpt-4o"}

    def test_without_json_logs(self, tmp_path: Path, clean_logger: None) -> None:
        logger = setup_logging(log_dir=tmp_path, console=False, json_logs=False)
        assert len(logger.handlers) == 2

    def test_repeated_setup_replaces_handlers(self, tmp_path: Path, clean_logger: None) -> None:
        setup_logging(log_dir=tmp_path, console=True)
        logger = setup_logging(log_dir=tmp_path, console=True)
        assert len(logger.handlers) == 4


class TestStructuredFormatter:
    def test_includes_exception(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        data = json.loads(StructuredFormatter().format(record))
        assert data["level"] == "ERROR"
        assert data["exception"]["type"] == "RuntimeError"
        assert data["exception"]["message"] == "boom"


class TestLogPerformance:
    def test_sync(self, caplog: pytest.LogCaptureFixture) -> None:
        @log_performance(logging.getLogger("perf"))
        def add(a: int, b: int) -> int:
            return a + b

        with caplog.at_level(logging.DEBUG, logger="perf"):
            assert add(2, 3) == 5
        assert "add completed in" in caplog.text

    @pytest.mark.asyncio
    async def test_async_failure_logged_and_raised(self, caplog: pytest.LogCaptureFixture) -> None:
        @log_performance(logging.getLogger("perf"))
        async def explode() -> None:
            raise ValueError("nope")

        assert inspect.iscoroutinefunction(explode)
        with caplog.at_level(logging.DEBUG, logger="perf"):
            with pytest.raises(ValueError):
                await explode()
        assert "explode failed after" in caplog.text
