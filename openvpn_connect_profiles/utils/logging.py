"""Logging utilities."""

from __future__ import annotations

import logging
import logging.handlers
import os
import tempfile
from pathlib import Path

LOG_DIR = Path(os.environ.get("OPENVPN_CONNECT_PROFILES_LOG_DIR", Path(tempfile.gettempdir()) / "openvpn-connect-profiles"))
LOG_DIR.mkdir(parents=True, exist_ok=True)


def get_logger(name: str, log_file: Path | None = None) -> logging.Logger:
    logger = logging.getLogger(f"openvpn_connect_profiles.{name}")
    logger.setLevel(logging.DEBUG)
    if any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logger.handlers):
        return logger
    if log_file is None:
        log_file = LOG_DIR / f"{name}.log"
    handler = logging.handlers.RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
    return logger
