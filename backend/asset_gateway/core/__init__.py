from .cache import cache
from .config import settings
from .logging import logger, setup_logging

__all__ = [
    "cache",
    "logger",
    "settings",
    "setup_logging"
]
