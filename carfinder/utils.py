# carfinder/utils.py
"""Shared utilities: the service logger, a retry decorator for start-up
steps and the UTC clock."""
import logging
import time
from datetime import datetime, timezone
from functools import wraps

from . import config

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def get_logger(name="carfinder"):
    logging.basicConfig(format=LOG_FORMAT, level=getattr(logging, config.LOG_LEVEL, logging.INFO))
    return logging.getLogger(name)

logger = get_logger()


def retry(exceptions, tries=3, delay=1, backoff=2, what=None, sleep=time.sleep):
    """Call the wrapped function up to `tries` times while it raises
    `exceptions`, waiting `delay` seconds (times `backoff` each round).
    The last failure propagates."""
    def deco_retry(f):
        label = what or f.__name__

        @wraps(f)
        def f_retry(*args, **kwargs):
            wait = delay
            for attempt in range(1, tries):
                try:
                    return f(*args, **kwargs)
                except exceptions as e:
                    logger.warning("%s failed (attempt %d/%d): %s; retrying in %ss",
                                   label, attempt, tries, e, wait)
                    sleep(wait)
                    wait *= backoff
            return f(*args, **kwargs)
        return f_retry
    return deco_retry


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every stored datetime uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
