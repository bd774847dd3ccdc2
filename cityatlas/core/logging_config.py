from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Abuse signals (privilege escalation attempts) go here, separate from ordinary denies.
SECURITY_LOGGER_NAME = "cityatlas.security"

_configured = False


def configure_logging(level: str | int = "INFO") -> None:
    """
    Install a single stream handler on the "cityatlas" logger.
    Safe to call more than once (app factory + tests).
    """
    global _configured

    root = logging.getLogger("cityatlas")
    root.setLevel(level if isinstance(level, int) else str(level).upper())

    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True


def get_security_logger() -> logging.Logger:
    return logging.getLogger(SECURITY_LOGGER_NAME)
