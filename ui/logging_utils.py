"""Logging setup for the newsdigest command line."""
from __future__ import annotations

import logging
import os
from pathlib import Path


def setup_logging(level_name: str | None = None) -> None:
    """Log to a file and to the console, once per process."""
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    level_name = (level_name or os.getenv("NEWSDIGEST_LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    log_file = os.getenv("NEWSDIGEST_LOG_FILE", "newsdigest.log")

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)

    root_logger.setLevel(level)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(stream_handler)
    # Keep request-level chatter out of the stage log.
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))
