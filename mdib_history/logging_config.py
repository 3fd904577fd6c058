"""
Logging for archive readers, replays and the mdib-history command line.

Every log line of a replay carries the sequence id of the reconstructed MDIB as
trace_id, so messages from two interleaved sessions of one archive (or two
concurrent replays) can be told apart. Logs go to stderr because the commands
print their --json results on stdout.

Environment Variables:
    MDIB_HISTORY_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR) - default: INFO
    MDIB_HISTORY_LOG_FORMAT: Log format (json, text) - default: json

Usage:
    from mdib_history.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__, trace_id="urn:uuid:...")
    logger.info("Replaying history from mdib version %s", 0)
"""

import logging
import os
import sys
from typing import Optional

from pythonjsonlogger.json import JsonFormatter


class TraceIDFilter(logging.Filter):
    """Fills trace_id for records logged outside a session, e.g. by archive backends or boto3."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "trace_id"):
            record.trace_id = "N/A"  # type: ignore
        return True


def setup_logging() -> None:
    """
    Install the stderr handler used by the mdib-history commands.

    Level and format come from MDIB_HISTORY_LOG_LEVEL and MDIB_HISTORY_LOG_FORMAT.
    Report application and dropped retransmissions are logged at DEBUG. Test run
    invalidations are logged at ERROR.
    """
    log_level = os.getenv("MDIB_HISTORY_LOG_LEVEL", "INFO").upper()
    log_format = os.getenv("MDIB_HISTORY_LOG_FORMAT", "json").lower()

    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    level = level_map.get(log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stderr keeps stdout free for --json command output
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(TraceIDFilter())

    if log_format == "json":
        formatter: logging.Formatter = JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s %(trace_id)s",
            rename_fields={
                "asctime": "timestamp",
                "name": "logger",
                "levelname": "level",
            },
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s [trace_id=%(trace_id)s]",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str, trace_id: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Logger bound to one MDIB session.

    Args:
        name: Logger name (typically __name__)
        trace_id: Sequence id of the session being replayed or read, "N/A" if none
    """
    logger = logging.getLogger(name)
    return logging.LoggerAdapter(logger, {"trace_id": trace_id or "N/A"})
