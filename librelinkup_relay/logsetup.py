# -*- coding: utf-8 -*-

import logging
import sys
from datetime import datetime

LOGGER_NAME = "librelinkup"


def parse_log_level(s: str) -> int:
    s = (s or "").strip().upper()
    return {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }.get(s, logging.INFO)


class TZFormatter(logging.Formatter):
    """Formatter using the configured zone and millisecond precision."""

    def __init__(self, fmt: str, tz):
        super().__init__(fmt=fmt, datefmt=None)
        self._tz = tz

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=self._tz)
        return dt.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


def setup_logger(log_level: str, tz) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(parse_log_level(log_level))
    logger.handlers.clear()
    logger.propagate = False

    h = logging.StreamHandler(sys.stderr)
    h.setFormatter(TZFormatter("%(asctime)s [%(levelname)s] %(message)s", tz))
    logger.addHandler(h)

    return logger
