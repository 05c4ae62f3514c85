# Logging setup + the debug_log shorthand used by the entry points

import logging

from almanac.utils.config import CONFIG

LOGGER_NAME = "almanac"
_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(debug: bool | None = None) -> logging.Logger:
    """Configure the almanac logger hierarchy once. Safe to call repeatedly."""
    if debug is None:
        debug = CONFIG.get("debug_mode", False)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def debug_log(msg: str) -> None:
    if CONFIG.get("debug_mode", False):
        logging.getLogger(LOGGER_NAME).debug(msg)
