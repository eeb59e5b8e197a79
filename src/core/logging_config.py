"""Logging setup for the API process."""

import logging

from config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Operator channel for lost audit records
AUDIT_ALERT_LOGGER = "audit.alert"


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configure the root logger once.

    Args:
        level: Log level name, e.g. "INFO".
    """
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # Audit alerts are never filtered out by a quiet root level
    logging.getLogger(AUDIT_ALERT_LOGGER).setLevel(logging.WARNING)
