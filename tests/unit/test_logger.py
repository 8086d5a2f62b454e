"""Tests for logging configuration."""

import io
import logging
import os
from unittest.mock import patch

import pytest

from lambda_worker.logger import (
    CHATTY_LOGGERS,
    get_log_format,
    get_log_level,
    get_namespace_log_level,
    setup_logging,
)


@pytest.fixture
def clean_root_logger():
    root = logging.getLogger()
    touched = [logging.getLogger("lambda_worker")] + [
        logging.getLogger(name) for name in CHATTY_LOGGERS
    ]
    saved_handlers = root.handlers[:]
    saved_level = root.level
    saved_levels = [logger.level for logger in touched]
    root.handlers = []
    yield root
    root.handlers = saved_handlers
    root.setLevel(saved_level)
    for logger, level in zip(touched, saved_levels):
        logger.setLevel(level)


class TestLogLevel:
    def test_defaults_to_info(self):
        with patch.dict(os.environ, {}, clear=True):
            assert get_log_level() == logging.INFO

    def test_reads_env(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "debug"}):
            assert get_log_level() == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "chatty"}):
            assert get_log_level() == logging.INFO

    def test_namespace_level_follows_default_when_unset(self):
        with patch.dict(os.environ, {}, clear=True):
            assert get_namespace_log_level(logging.WARNING) == logging.WARNING

    def test_namespace_level_override(self):
        with patch.dict(os.environ, {"LAMBDA_WORKER_LOG_LEVEL": "debug"}):
            assert get_namespace_log_level(logging.WARNING) == logging.DEBUG


class TestSetupLogging:
    def test_debug_format_includes_location(self):
        assert "%(filename)s:%(lineno)d" in get_log_format(logging.DEBUG)
        assert "%(filename)s" not in get_log_format(logging.INFO)

    def test_installs_stream_handler(self, clean_root_logger):
        stream = io.StringIO()

        # pytest attaches its own capture handlers to the root logger
        with patch.object(clean_root_logger, "hasHandlers", return_value=False):
            setup_logging(level="WARNING", stream=stream)
        logging.getLogger("lambda_worker.test").warning("careful")

        assert clean_root_logger.level == logging.WARNING
        assert "careful" in stream.getvalue()

    def test_namespace_traced_while_root_stays_quiet(self, clean_root_logger):
        stream = io.StringIO()

        with patch.object(clean_root_logger, "hasHandlers", return_value=False):
            setup_logging(level="WARNING", stream=stream, namespace_level="DEBUG")
        logging.getLogger("lambda_worker.runner").debug("fetched req-1")
        logging.getLogger("some_library").info("library chatter")

        output = stream.getvalue()
        assert "fetched req-1" in output
        assert "lambda_worker.runner" in output
        assert "library chatter" not in output
        assert clean_root_logger.level == logging.WARNING

    def test_namespace_level_from_env(self, clean_root_logger):
        with patch.dict(os.environ, {"LAMBDA_WORKER_LOG_LEVEL": "ERROR"}):
            setup_logging(level=logging.INFO, stream=io.StringIO())

        assert logging.getLogger("lambda_worker").level == logging.ERROR

    def test_quiets_http_stack_above_debug(self, clean_root_logger):
        setup_logging(level=logging.INFO, stream=io.StringIO())

        for name in CHATTY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_keeps_request_lines_at_debug(self, clean_root_logger):
        setup_logging(level=logging.DEBUG, stream=io.StringIO())

        assert logging.getLogger("httpx").level == logging.INFO
        assert logging.getLogger("httpcore").level == logging.INFO
