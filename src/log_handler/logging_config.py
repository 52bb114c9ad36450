# src/log_handler/logging_config.py
import logging
import os
import queue
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from typing import Dict, Optional, Union

# Global state so that logging is configured once per process
_logging_configured = False
_log_listener: Optional[QueueListener] = None

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_MODULE_LEVELS: Dict[str, Union[int, str]] = {
    "src.job_queue": logging.INFO,
    "src.admission": logging.INFO,
    "src.resilience": logging.INFO,
    "src.worker": logging.INFO,
    "aiohttp": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def setup_logging(
    log_level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    module_levels: Optional[Dict[str, Union[int, str]]] = None,
) -> QueueListener:
    """
    Central logging configuration for the overlay backend.

    Records are pushed onto an in-memory queue by a ``QueueHandler`` and
    written out by a ``QueueListener`` thread, so coroutines on the event
    loop never block on console or file I/O.

    Args:
        log_level: Base logging level for the application
        log_file: Optional file path to write logs to (rotated at 10MB)
        module_levels: Mapping of logger names to levels, merged over
                       DEFAULT_MODULE_LEVELS, e.g. {"src.job_queue": "DEBUG"}

    Returns:
        The running QueueListener. Call shutdown_logging() on exit.
    """
    global _logging_configured, _log_listener

    if _logging_configured and _log_listener is not None:
        return _log_listener

    if log_file and os.path.dirname(log_file):
        os.makedirs(os.path.dirname(log_file), exist_ok=True)

    log_queue: queue.Queue = queue.Queue()
    formatter = logging.Formatter(LOG_FORMAT)

    handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(
            log_file, maxBytes=10 * 1024 * 1024, backupCount=5  # 10MB
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    queue_handler = QueueHandler(log_queue)
    listener = QueueListener(log_queue, *handlers, respect_handler_level=True)

    root_logger = logging.getLogger()

    # Remove any existing handlers to avoid duplicate output
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    root_logger.addHandler(queue_handler)
    root_logger.setLevel(_to_level(log_level))

    levels = dict(DEFAULT_MODULE_LEVELS)
    if module_levels:
        levels.update(module_levels)
    for module_name, level in levels.items():
        logging.getLogger(module_name).setLevel(_to_level(level))

    listener.start()

    _logging_configured = True
    _log_listener = listener

    return listener


def setup_logging_from_env() -> QueueListener:
    """Configure logging from OVERLAY_LOG_LEVEL / OVERLAY_LOG_FILE / OVERLAY_WORKER_LOG_LEVEL."""
    return setup_logging(
        log_level=os.environ.get("OVERLAY_LOG_LEVEL", "INFO"),
        log_file=os.environ.get("OVERLAY_LOG_FILE") or None,
        module_levels={
            "src.worker": os.environ.get("OVERLAY_WORKER_LOG_LEVEL", "INFO"),
        },
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for the given module.

    Args:
        name: The module name, typically __name__

    Returns:
        A logger instance
    """
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """
    Flush and stop the queue listener.
    Should be called during application shutdown.
    """
    global _log_listener, _logging_configured

    if _log_listener is not None:
        _log_listener.stop()
        _log_listener = None
        _logging_configured = False


def _to_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO
