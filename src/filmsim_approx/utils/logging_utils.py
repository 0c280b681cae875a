from __future__ import annotations

import logging
from pathlib import Path
import sys


NOISY_LOGGERS = ("PIL",)


def configure_logging(level: str, log_file: Path | None = None) -> None:
    """Log to stderr (stdout carries JSON payloads) and optionally to a file."""

    resolved_level = getattr(logging, level.upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=resolved_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=handlers,
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved_level, logging.INFO))
