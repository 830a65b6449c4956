# posgradobot/utils/logging.py
"""
Console logging for the demo scripts; the web app configures logging in main.py.

    from posgradobot.utils.logging import get_logger
    logger = get_logger("posgradobot.demo", "debug")
"""
import logging
from typing import Optional

SCRIPT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.INFO, format=SCRIPT_FORMAT)

    logger = logging.getLogger(name)
    if level:
        logger.setLevel(level.upper())
    return logger
