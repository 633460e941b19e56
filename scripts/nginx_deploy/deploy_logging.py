"""Console + flat-file logging for a single deploy run."""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Iterable

LOGGER_NAME = "nginx_deploy"
LOG_FORMAT = "[%(asctime)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
REDACTED = "***"

logger = logging.getLogger(LOGGER_NAME)


def build_log_path(log_dir: Path, now: datetime | None = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return log_dir / f"deploy_{stamp}.log"


class SecretRedactingFilter(logging.Filter):
    """Replace every known secret in the rendered message with `***`."""

    def __init__(self, secrets: Iterable[str] = ()):
        super().__init__()
        self._secrets: list[str] = []
        for secret in secrets:
            self.add_secret(secret)

    def add_secret(self, secret: str) -> None:
        secret = str(secret or "").strip()
        if secret and secret not in self._secrets:
            self._secrets.append(secret)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        for secret in self._secrets:
            message = message.replace(secret, REDACTED)
        record.msg = message
        record.args = None
        return True


def configure_logging(log_path: Path, *, stream=None) -> SecretRedactingFilter:
    """Attach file + console handlers to the deploy logger.

    Any handlers left from a previous run in the same process are closed first.
    Returns the redaction filter so the caller can register the token once known.
    """
    shutdown_logging()

    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    redactor = SecretRedactingFilter()

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    console_handler = logging.StreamHandler(stream or sys.stdout)
    for handler in (file_handler, console_handler):
        handler.setFormatter(formatter)
        handler.addFilter(redactor)
        logger.addHandler(handler)

    logger.setLevel(logging.INFO)
    logger.propagate = False
    return redactor


def shutdown_logging() -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


class StepLog:
    """Numbered stage banners plus plain info/warning/error lines."""

    def __init__(self, log: logging.Logger = logger):
        self._log = log
        self.step_number = 0

    def step(self, message: str, *, icon: str = "🚀") -> None:
        self.step_number += 1
        self._log.info("%s Step %d: %s", icon, self.step_number, message)

    def info(self, message: str, *, icon: str = "ℹ️") -> None:
        self._log.info("%s %s", icon, message)

    def warning(self, message: str) -> None:
        self._log.warning("⚠️ %s", message)

    def error(self, message: str) -> None:
        self._log.error("❌ ERROR: %s", message)
