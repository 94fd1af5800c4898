"""Logging utilities tailored for puzzle generation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def configure_logging(level: int = logging.INFO, log_file: Optional[Path | str] = None) -> None:
    """Configure root logging with a compact formatter.

    Generation runs many short solve attempts, so attempt-level messages go
    to INFO and individual candidate rejections to DEBUG. ``log_file``
    mirrors the console output to disk for long batch runs.
    """

    formatter = logging.Formatter(fmt=_FORMAT, datefmt="%H:%M:%S")
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)


def parse_level(name: str, default: int = logging.INFO) -> int:
    """Map a CLI level name such as ``"debug"`` to a logging constant."""

    value = logging.getLevelName(name.strip().upper())
    return value if isinstance(value, int) else default


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a namespaced logger, configuring defaults if needed."""

    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name or "pourpuzzle")
