from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from launchpad.domain.errors import NotReady

logger = logging.getLogger(__name__)

T = TypeVar("T")


def wait_until(
    poll: Callable[[], T | None],
    *,
    attempts: int,
    delay_seconds: float,
    what: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call `poll` until it returns a truthy value, at most `attempts` times with a fixed delay.

    Only used for read-only visibility checks. Raises NotReady once the cap is exceeded.
    """
    attempts = max(1, int(attempts))
    for attempt in range(1, attempts + 1):
        value = poll()
        if value:
            return value
        if attempt < attempts:
            logger.debug("Waiting for %s (attempt %d/%d)", what, attempt, attempts)
            sleep(delay_seconds)
    raise NotReady(f"{what} not visible after {attempts} attempts")
