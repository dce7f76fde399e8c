"""Root logger setup."""

import logging

from margin_desk.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


def setup_logging():
    """Configure the root logger from settings. Safe to call more than once."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)

    # APScheduler logs every job run at INFO
    logging.getLogger("apscheduler").setLevel(max(level, logging.WARNING))
