# src/log_handler/__init__.py
from .logging_config import (
    setup_logging,
    setup_logging_from_env,
    get_logger,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "setup_logging_from_env",
    "get_logger",
    "shutdown_logging",
]

__version__ = "1.0.0"
