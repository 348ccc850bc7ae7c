"""
Database logging configuration.

Sets up the ``pghandle`` logger and provides helpers that keep query,
connection and reaper log lines consistent across modules.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .config import LoggingConfig

LOGGER_NAME = 'pghandle'


class SafeFormatter(logging.Formatter):
    """Formatter that provides a default for the handle_id field."""

    def format(self, record):
        if not hasattr(record, 'handle_id'):
            record.handle_id = '-'
        return super().format(record)


def setup_db_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """
    Configure the pghandle logger.

    Args:
        config: Logging settings, defaults to INFO on stderr

    Returns:
        The configured package logger
    """
    config = config or LoggingConfig()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, config.level))

    # Remove any existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    formatter = SafeFormatter(
        '%(asctime)s.%(msecs)03d - [%(handle_id)s] - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def log_query(logger, query: str, params: Optional[Sequence[Any]] = None,
              duration: Optional[float] = None) -> None:
    """
    Log a completed statement.

    DEBUG includes the SQL text and parameters, INFO only the duration.
    """
    elapsed = f"{duration:.5f}" if duration is not None else "?"
    if logger.isEnabledFor(logging.DEBUG):
        message = f"Query completed in {elapsed} seconds.\nQuery: {query}"
        if params:
            message += f"\nParams: {list(params)}"
        logger.debug(message)
    elif duration is not None:
        logger.info(f"Query completed in {duration:.5f} seconds.")


def log_connection_event(logger, event: str, details: Optional[str] = None) -> None:
    """
    Log connection lifecycle events.

    Args:
        event: 'opened', 'released', 'closed' or 'error'
        details: Additional event details
    """
    message = f"Connection {event}"
    if details:
        message += f": {details}"

    if event == 'error':
        logger.error(message)
    elif event == 'released':
        logger.info(message)
    else:
        logger.debug(message)


class HandleLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that stamps records with the handle identifier."""

    def __init__(self, logger: logging.Logger, handle: Any):
        super().__init__(logger, {})
        self.handle = handle

    def process(self, msg, kwargs):
        extra = kwargs.setdefault('extra', {})
        extra['handle_id'] = getattr(self.handle, 'identifier', None) or '-'
        return msg, kwargs

    def query(self, query: str, params: Optional[Sequence[Any]] = None,
              duration: Optional[float] = None) -> None:
        """Log a completed statement."""
        log_query(self, query, params, duration)

    def connection_event(self, event: str, details: Optional[str] = None) -> None:
        """Log a connection lifecycle event."""
        log_connection_event(self, event, details)


def error_context(sql: Optional[str], params: Optional[Sequence[Any]], stack: Optional[str]) -> Dict[str, Any]:
    """Fields included in query failure log lines"""
    return {'sql': sql, 'params': list(params) if params else params, 'stack': stack}
