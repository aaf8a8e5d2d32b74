import logging
import sys

from graceful_shutdown import config

LOGGER_NAME = "graceful_shutdown"


def setup_logger(level=None):
    logger = logging.getLogger(LOGGER_NAME)
    if getattr(logger, "_configured", False):
        return logger

    logger.setLevel(level or config.LOG_LEVEL)
    logger.handlers.clear()

    # No logger name and no timestamp: CloudWatch adds the ingestion time.
    fmt = logging.Formatter("%(levelname)s %(message)s")

    ch = logging.StreamHandler(sys.stdout)
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    # The shutdown phase lines are printed whatever LOG_LEVEL says.
    shutdown_logger = logging.getLogger(f"{LOGGER_NAME}.shutdown")
    shutdown_logger.setLevel(min(logger.level, logging.INFO))

    logger._configured = True
    return logger


def flush():
    for h in logging.getLogger(LOGGER_NAME).handlers:
        h.flush()
