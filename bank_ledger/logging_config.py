"""
Logging configuration for the Bank Ledger API.

Every module logs through a module-level logger obtained with
logging.getLogger(__name__), so all records land under the "bank_ledger"
namespace. setup_logging() is called once from main.py and attaches a single
stdout handler to that namespace, either human-readable or one JSON object
per line for log shippers.

Passwords, tokens and full card numbers are never passed to a logger.
"""

import json
import logging
import sys
from datetime import datetime, timezone

LOGGER_NAMESPACE = "bank_ledger"


class JSONFormatter(logging.Formatter):
    """Render each record as a single-line JSON document."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", json_format: bool = False) -> logging.Logger:
    """
    Configure the bank_ledger logger hierarchy.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Emit JSON lines instead of the plain text format.

    Returns:
        The configured namespace logger.
    """
    logger = logging.getLogger(LOGGER_NAMESPACE)

    # Remove existing handlers so repeated calls don't duplicate output
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False

    # httpx logs every webhook request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logger
