"""Centralized logging setup for stt-session.

Every module logs through one queue-backed sink so that callbacks fired on the
event loop never block on file I/O.
"""

import atexit
import logging
import os
import sys
import threading
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import SimpleQueue

_LISTENER_LOCK = threading.Lock()
_LOG_QUEUE: SimpleQueue | None = None
_LOG_LISTENER: QueueListener | None = None

LOG_FILE_NAME = "stt-session.log"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5


def _is_truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes"}


def _stop_listener() -> None:
    global _LOG_LISTENER
    if _LOG_LISTENER is not None:
        _LOG_LISTENER.stop()
        _LOG_LISTENER = None


def _resolve_logs_dir() -> Path | None:
    env_dir = os.environ.get("STT_SESSION_LOG_DIR")
    logs_dir = Path(env_dir) if env_dir else Path.home() / ".stt-session" / "logs"

    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        return None
    return logs_dir


def _ensure_listener(log_level: int, include_console: bool) -> QueueListener | None:
    global _LOG_QUEUE, _LOG_LISTENER
    with _LISTENER_LOCK:
        if _LOG_LISTENER is not None and _LOG_QUEUE is not None:
            return _LOG_LISTENER

        handlers: list[logging.Handler] = []
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )

        logs_dir = _resolve_logs_dir()
        if logs_dir is not None:
            try:
                file_handler = RotatingFileHandler(
                    logs_dir / LOG_FILE_NAME, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
                )
            except OSError:
                file_handler = None
            if file_handler is not None:
                file_handler.setLevel(log_level)
                file_handler.setFormatter(formatter)
                handlers.append(file_handler)

        if include_console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(log_level)
            console_handler.setFormatter(formatter)
            handlers.append(console_handler)

        if not handlers:
            return None

        _LOG_QUEUE = SimpleQueue()
        _LOG_LISTENER = QueueListener(_LOG_QUEUE, *handlers, respect_handler_level=True)
        _LOG_LISTENER.start()
        atexit.register(_stop_listener)
        return _LOG_LISTENER


def setup_logging(
    module_name: str,
    log_level: str | None = None,
    include_console: bool | None = None,
) -> logging.Logger:
    """Setup standardized logging for stt-session modules.

    Args:
        module_name: Name of the module (usually __name__)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR). Defaults to
            STT_SESSION_LOG_LEVEL, then INFO.
        include_console: Whether to log to stderr. If None, uses
            STT_SESSION_CONSOLE_LOGS ("1"/"true"/"yes" enables).

    Returns:
        Configured logger instance

    """
    logger = logging.getLogger(module_name)

    # Avoid duplicate handlers if already configured
    if logger.handlers:
        return logger

    level_name = log_level or os.environ.get("STT_SESSION_LOG_LEVEL", "INFO")
    level = getattr(logging, level_name.upper(), logging.INFO)
    logger.setLevel(level)
    if include_console is None:
        include_console = _is_truthy(os.environ.get("STT_SESSION_CONSOLE_LOGS"))

    listener = _ensure_listener(level, include_console)
    if listener is None or _LOG_QUEUE is None:
        logger.addHandler(logging.NullHandler())
        return logger

    queue_handler = QueueHandler(_LOG_QUEUE)
    queue_handler.setLevel(level)
    logger.addHandler(queue_handler)

    return logger


def set_level(log_level: str) -> None:
    """Change the level of every logger created through setup_logging."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    for name, logger in logging.Logger.manager.loggerDict.items():
        if name.startswith("stt_session") and isinstance(logger, logging.Logger):
            logger.setLevel(level)
            for handler in logger.handlers:
                handler.setLevel(level)
    if _LOG_LISTENER is not None:
        for handler in _LOG_LISTENER.handlers:
            handler.setLevel(level)


__all__ = ["setup_logging", "set_level"]
