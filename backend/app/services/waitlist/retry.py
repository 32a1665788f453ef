# backend/app/services/waitlist/retry.py

import logging
import time
from typing import Callable, TypeVar

from ..errors import StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_transient(
    fn: Callable[..., T],
    *args,
    attempts: int = 3,
    backoff: float = 0.2,
    **kwargs,
) -> T:
    """
    Call `fn`, retrying StoreUnavailable (incl. ConditionFailed) with
    exponential backoff: backoff, 2*backoff, 4*backoff, ...

    Permanent errors (DuplicateEntry, InvalidTransition, ...) propagate
    immediately.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn(*args, **kwargs)
        except StoreUnavailable as e:
            if attempt == attempts:
                raise
            delay = backoff * (2 ** (attempt - 1))
            logger.warning(
                f"{getattr(fn, '__name__', fn)} failed ({e}), "
                f"retry {attempt}/{attempts - 1} in {delay:.2f}s"
            )
            time.sleep(delay)
    raise AssertionError("unreachable")
