"""Bounded-backoff retry for reads that may trail a just-committed write."""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from app.core.errors import TransientUnavailable, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    value: Optional[T]
    attempts: int
    retry_exhausted: bool = False

    @property
    def found(self) -> bool:
        return self.value is not None


def backoff_delay(attempt: int, backoff: float, exponential: bool = False) -> float:
    """Delay before retry number `attempt` (1-based)."""
    if exponential:
        return backoff * (2 ** (attempt - 1))
    return backoff


def retry_read(
    read: Callable[[], Optional[T]],
    max_attempts: int = 3,
    backoff: float = 0.5,
    exponential: bool = False,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "read",
) -> RetryOutcome[T]:
    """
    Call `read` until it returns a value or `max_attempts` is used up.

    None and TransientUnavailable both count as "not yet visible". Any other
    exception (validation, policy denial) propagates on the first attempt.
    retry_exhausted is set when the final attempt failed with
    TransientUnavailable, so callers can tell "absent" from "unreachable".
    """
    if max_attempts < 1:
        raise ValidationError(f"max_attempts must be >= 1, got {max_attempts}")
    if backoff < 0:
        raise ValidationError(f"backoff must be >= 0, got {backoff}")

    unreachable = False
    for attempt in range(1, max_attempts + 1):
        try:
            value = read()
            unreachable = False
        except TransientUnavailable as e:
            logger.warning("%s: attempt %d/%d unavailable: %s", label, attempt, max_attempts, e)
            value = None
            unreachable = True
        if value is not None:
            if attempt > 1:
                logger.info("%s: found on attempt %d/%d", label, attempt, max_attempts)
            return RetryOutcome(value=value, attempts=attempt)
        if attempt < max_attempts:
            delay = backoff_delay(attempt, backoff, exponential)
            logger.debug("%s: nothing yet, retrying in %.2fs (%d/%d)", label, delay, attempt, max_attempts)
            sleep(delay)

    logger.warning("%s: not found after %d attempts (unreachable=%s)", label, max_attempts, unreachable)
    return RetryOutcome(value=None, attempts=max_attempts, retry_exhausted=unreachable)
