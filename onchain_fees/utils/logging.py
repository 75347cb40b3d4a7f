"""Logging configuration for the fee reader."""

import sys
import logging
import logging.handlers
from pathlib import Path
from typing import List, Optional
import structlog
from structlog.stdlib import LoggerFactory

from onchain_fees.models.config import FeeReaderConfig

_installed: List[logging.Handler] = []


def _renderer(log_format: str):
    if log_format.lower() == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def _file_handler(config: FeeReaderConfig, level: int) -> Optional[logging.Handler]:
    if not config.log_file:
        return None

    Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        config.log_file,
        maxBytes=config.log_max_size_mb * 1024 * 1024,
        backupCount=config.log_backup_count
    )
    handler.setLevel(level)
    return handler


def setup_logging(config: FeeReaderConfig) -> None:
    """
    Route structlog events through stdlib logging.

    Log lines go to stderr so CLI output on stdout stays machine-readable;
    an optional rotating file receives the same rendered lines.
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    root = logging.getLogger()

    # Repeated calls replace our handlers and leave foreign ones alone
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()

    _installed.append(logging.StreamHandler(sys.stderr))
    file_handler = _file_handler(config, level)
    if file_handler is not None:
        _installed.append(file_handler)

    formatter = logging.Formatter("%(message)s")
    for handler in _installed:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    # One connection-pool line per RPC request otherwise
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            _renderer(config.log_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )
