"""
Logging setup for the service and CLI.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
HANDLER_NAME = "five_lines_story"


def configure_logging(level: str = "INFO") -> None:
    """Install one stream handler on the package logger.

    Calling it again only changes the level.
    """
    logger = logging.getLogger("five_lines_story")
    logger.setLevel(level.upper())
    if not any(h.get_name() == HANDLER_NAME for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.set_name(HANDLER_NAME)
        logger.addHandler(handler)
