"""
Logging setup for the LifeSync sensor engine
"""

import logging

from lifesync.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configure the root handler once and the lifesync logger level."""
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger("lifesync").setLevel(level.upper())
