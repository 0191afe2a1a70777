from __future__ import annotations

import logging
import sys

"""Console logging for qcforms.

One stdout handler on the ``qcforms`` logger renders records as ``LABEL message``,
e.g. ``WARN REG.CKU.018: no loader procedure configured``. Modules log through
``logging.getLogger(__name__)`` and reach that handler by propagation.

Finalize attempts also go to the JSON Lines audit file (qcforms.logging.audit_log).
"""

__all__ = [
    "setup_logging",
    "get_logger",
    "log_summary",
    "reset_logging",
    "set_level",
    "LabeledFormatter",
    "SUMMARY_LEVEL",
    "LOGGER_NAME",
]

LOGGER_NAME = "qcforms"

# sits between INFO (20) and WARNING (30)
SUMMARY_LEVEL = 25

_LABELS = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    SUMMARY_LEVEL: "SUMMARY",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "CRITICAL",
}

_logger: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    """``LABEL message``; unknown levels fall back to their level name."""

    LEVEL_LABELS = _LABELS

    def format(self, record: logging.LogRecord) -> str:
        label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        return f"{label} {record.getMessage()}"


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Attach the labeled stdout handler to the ``qcforms`` logger.

    Repeated calls return the already configured logger untouched; call
    reset_logging() first to rebuild it (tests do this before each CLI run
    so the handler picks up the current ``sys.stdout``).
    """
    global _logger
    if _logger is not None:
        return _logger

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")
    logger = logging.getLogger(LOGGER_NAME)
    _detach_handlers(logger)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(LabeledFormatter())
    logger.addHandler(console)
    logger.propagate = False

    _logger = logger
    set_level(level)
    return logger


def set_level(level: int | str) -> None:
    """Change the threshold of the logger and its console handler together."""
    logger = get_logger()
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)


def get_logger() -> logging.Logger:
    return _logger if _logger is not None else setup_logging()


def log_summary(message: str) -> None:
    get_logger().log(SUMMARY_LEVEL, message)


def _detach_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


def reset_logging() -> None:
    """Drop the configured handler so the next setup_logging() starts fresh."""
    global _logger
    if _logger is not None:
        _detach_handlers(_logger)
    _logger = None
