"""Shared utility functions for the Receipt Insights project."""

import logging
from datetime import UTC, datetime
from pathlib import Path

import colorlog

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Get a logger with a colorized format for the project.

    Handlers live on the top-level project logger (the part of ``name`` before
    the first dot); child loggers propagate to it.
    """
    logger = logging.getLogger(name)
    root = logging.getLogger(name.split(".")[0])
    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        handler = logging.StreamHandler()
        formatter = colorlog.ColoredFormatter(
            f"%(log_color)s{LOG_FORMAT}",
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            },
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    root.propagate = False
    return logger


def add_file_handler(logger: logging.Logger, log_dir: str | Path, filename: str) -> None:
    """Attach a plain (not colorized) file handler to a logger once."""
    if any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        return
    ensure_dir(log_dir)
    file_handler = logging.FileHandler(Path(log_dir) / filename)
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)


def ensure_dir(path: str | Path) -> None:
    """Ensure a directory exists (like mkdir -p)."""
    Path(path).mkdir(parents=True, exist_ok=True)


def utcnow() -> datetime:
    """Get the current UTC time as an aware datetime."""
    return datetime.now(UTC)


def utcnow_iso() -> str:
    """Get the current UTC time as an ISO8601 string."""
    return utcnow().isoformat()
