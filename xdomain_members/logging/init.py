from __future__ import annotations

import logging
import sys
from typing import TextIO

"""Console logging for the membership tool.

Every line starts with a level label (DEBUG|INFO|WARN|ERROR|SUMMARY) and then
the message, nothing else, so the output can be grepped the same way in a
terminal and in a scheduler's job log. Module loggers
(``logging.getLogger(__name__)``) sit below APP_LOGGER_NAME and reach the one
stdout handler installed here.

Secrets registered with register_secret() are masked in any formatted message
before it reaches the handler. The CLI registers the bind password right after
the config is loaded.
"""

__all__ = [
    "APP_LOGGER_NAME",
    "SUMMARY_LEVEL",
    "LabeledFormatter",
    "SecretRedactingFilter",
    "get_logger",
    "log_summary",
    "register_secret",
    "reset_logging",
    "set_debug",
    "setup_logging",
]

APP_LOGGER_NAME = "xdomain_members"
SUMMARY_LEVEL = 25  # between INFO and WARNING
REDACTED = "******"

_logger: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
        SUMMARY_LEVEL: "SUMMARY",
    }

    def format(self, record: logging.LogRecord) -> str:
        label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        return f"{label} {record.getMessage()}"


class SecretRedactingFilter(logging.Filter):
    """Replace registered secret values in the rendered message."""

    def __init__(self) -> None:
        super().__init__()
        self.secrets: set[str] = set()

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        masked = message
        for secret in self.secrets:
            masked = masked.replace(secret, REDACTED)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


_redactor = SecretRedactingFilter()


def register_secret(value: str | None) -> None:
    """Mask ``value`` in all console output from now on (empty values ignored)."""
    if value:
        _redactor.secrets.add(value)


def setup_logging(level: int = logging.INFO, stream: TextIO | None = None) -> logging.Logger:
    """Install the labeled stdout handler on the application logger.

    Calling it again returns the logger configured by the first call; use
    reset_logging() to start over (tests do).
    """
    global _logger
    if _logger is not None:
        return _logger

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")
    app = logging.getLogger(APP_LOGGER_NAME)
    for old in list(app.handlers):
        app.removeHandler(old)

    console = logging.StreamHandler(stream if stream is not None else sys.stdout)
    console.setLevel(level)
    console.setFormatter(LabeledFormatter())
    console.addFilter(_redactor)
    app.addHandler(console)
    app.setLevel(level)
    # the root logger stays untouched; no duplicate lines through propagation
    app.propagate = False

    _logger = app
    return app


def get_logger() -> logging.Logger:
    return _logger if _logger is not None else setup_logging()


def set_debug(logger: logging.Logger) -> None:
    logger.setLevel(logging.DEBUG)
    for handler in logger.handlers:
        handler.setLevel(logging.DEBUG)


def log_summary(message: str) -> None:
    get_logger().log(SUMMARY_LEVEL, message)


def reset_logging() -> None:
    """Forget the configured logger and registered secrets (for tests)."""
    global _logger
    _logger = None
    _redactor.secrets.clear()
