"""
Logging for lakeplan.

loguru is the single logging backend. Standard library loggers used by the
database stack are routed into it, and code working on one pipeline logs
through ``pipeline_logger`` so every line names the pipeline (and stage)
it belongs to.

Example:
    from lakeplan.utils.logger import logger, pipeline_logger

    logger.info("Compiled plan")
    pipeline_logger(42, stage=2).info("running 3 task(s)")
    # ... | INFO     | lakeplan.services.pipeline.runner:88 - [pipeline=42 stage=2] running 3 task(s)
"""

import inspect
import logging
import sys
from typing import TYPE_CHECKING

from loguru import logger as _logger

from ..settings import Settings, settings

if TYPE_CHECKING:
    from loguru import Logger

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "{extra[context]}<level>{message}</level>"
)

INTERCEPTED_LOGGERS = ("sqlalchemy", "aiosqlite", "asyncpg")


class InterceptHandler(logging.Handler):
    """Forward standard library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Report the caller outside the logging module
        frame, depth = inspect.currentframe(), 0
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        _logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def pipeline_logger(pipeline_id: int, stage: int | None = None) -> "Logger":
    """Logger whose lines are prefixed with ``[pipeline=N]`` or ``[pipeline=N stage=M]``."""
    context = f"pipeline={pipeline_id}" if stage is None else f"pipeline={pipeline_id} stage={stage}"
    return _logger.bind(context=f"[{context}] ")


def setup_logging(config: Settings | None = None, serialize: bool = False) -> None:
    """
    Configure loguru sinks from settings.

    Args:
        config: Settings to read the log options from, the global ones by default
        serialize: Write the file sink as JSON lines
    """
    config = config or settings
    level = config.log_level.upper()
    log_format = config.log_format or DEFAULT_FORMAT

    _logger.remove()
    _logger.configure(extra={"context": ""})

    _logger.add(
        sys.stderr,
        level=level,
        format=log_format,
        colorize=True,
        backtrace=config.debug,
        diagnose=config.debug,
    )

    if config.log_to_file:
        log_dir = config.get_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        _logger.add(
            str(log_dir / "lakeplan.log"),
            level=level,
            format=log_format,
            rotation=config.log_rotation,
            retention=config.log_retention,
            compression="zip",
            serialize=serialize,
            backtrace=config.debug,
            diagnose=config.debug,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in INTERCEPTED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False


setup_logging()

logger = _logger
