"""Tests for loguru setup and pipeline-bound logging."""

import logging

import pytest

from lakeplan.settings import Settings
from lakeplan.utils.logger import logger, pipeline_logger, setup_logging


@pytest.fixture
def captured():
    messages: list[str] = []
    sink_id = logger.add(messages.append, format="{extra[context]}{message}", level="DEBUG")
    yield messages
    logger.remove(sink_id)


def test_plain_lines_have_no_context(captured):
    logger.info("compiled plan")
    assert captured[-1].rstrip("\n") == "compiled plan"


def test_pipeline_context(captured):
    pipeline_logger(42).info("running 3 tasks")
    pipeline_logger(42, stage=2).warning("stopping")
    assert [line.rstrip("\n") for line in captured[-2:]] == [
        "[pipeline=42] running 3 tasks",
        "[pipeline=42 stage=2] stopping",
    ]


def test_stdlib_logs_are_intercepted(captured):
    logging.getLogger("sqlalchemy.engine").warning("pool exhausted")
    assert captured[-1].rstrip("\n") == "pool exhausted"


def test_file_sink(tmp_path):
    setup_logging(Settings(log_to_file=True, log_dir=str(tmp_path), log_level="debug"))
    try:
        pipeline_logger(7).info("to file")
    finally:
        # Removing the file sink flushes and closes it
        setup_logging(Settings(log_to_file=False))
    assert "[pipeline=7] to file" in (tmp_path / "lakeplan.log").read_text()
