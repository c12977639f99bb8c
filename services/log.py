from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from core.settings import SYNC_LOG_PATH


ROOT_LOGGER = "tyrehero"


def _ensure_root(log_path: Path = SYNC_LOG_PATH) -> logging.Logger:
    logger = logging.getLogger(ROOT_LOGGER)
    if not logger.handlers:
        try:
            Path(log_path).parent.mkdir(parents=True, exist_ok=True)
            handler: logging.Handler = RotatingFileHandler(
                log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
            )
        except OSError:
            # read-only data dir; fall back to stderr
            handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return ``tyrehero.<name>`` with the shared rotating sync log attached."""

    root = _ensure_root()
    if not name:
        return root
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


__all__ = ["get_logger", "ROOT_LOGGER"]
