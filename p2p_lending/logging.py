"""Logging setup for the marketplace core.

Core modules log through ``logging.getLogger(__name__)`` and attach the
entities a message is about with ``extra``::

    logger.info("Loan %s approved", loan_id, extra={"loan_id": loan_id, "status": "APPROVED"})

The standard format shows the loan id on every line; the JSON format emits
every context field that is present.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

# Attributes accepted through ``extra`` and emitted by JsonFormatter
CONTEXT_FIELDS = ("loan_id", "investor_id", "installment_id", "event_type", "status")

QUIET_LOGGERS = ("confluent_kafka", "psycopg", "faker")

STANDARD_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | loan=%(loan_id)s | %(message)s"


class LoanContextFilter(logging.Filter):
    """Give every record a ``loan_id`` so the standard format never fails."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "loan_id", None) is None:
            record.loan_id = "-"
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with the marketplace context fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None and value != "-":
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(
    level: str = "INFO",
    format_type: str = "standard",
    stream: TextIO | None = None,
) -> logging.Handler:
    """Configure the root logger for a marketplace process.

    Parameters
    ----------
    level : str
        Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Unknown names
        fall back to INFO.
    format_type : str
        "standard" for aligned text lines or "json" for one object per line.
    stream : TextIO | None
        Destination, stdout by default.

    Returns
    -------
    logging.Handler
        The handler installed on the root logger, replacing any previous ones.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if format_type == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(fmt=STANDARD_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)
    handler.addFilter(LoanContextFilter())
    root_logger.addHandler(handler)

    logging.getLogger("p2p_lending").setLevel(log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return handler
