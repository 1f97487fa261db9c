import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Type, TypeVar

import openai

logger = logging.getLogger(__name__)

T = TypeVar("T")

NON_RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.BadRequestError,
    PermissionError,
)


def is_retryable(error: BaseException) -> bool:
    """Auth, permission and malformed-request errors never succeed on retry"""
    return not isinstance(error, NON_RETRYABLE_ERRORS)


@dataclass
class RetryPolicy:
    """Exponential backoff shared by every external call"""

    max_attempts: int = 3
    base_delay: float = 1.0
    retryable: Callable[[BaseException], bool] = is_retryable
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        return cls(
            max_attempts=int(config.get("retry.max_attempts", 3)),
            base_delay=float(config.get("retry.base_delay_seconds", 1.0)),
        )

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2**attempt)

    def call(self, operation: Callable[[], T], label: Optional[str] = None) -> T:
        """Run operation, retrying transient failures"""
        attempts = max(1, self.max_attempts)

        for attempt in range(attempts):
            try:
                return operation()
            except Exception as e:
                if not self.retryable(e) or attempt == attempts - 1:
                    raise

                delay = self.delay_for(attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{attempts} of {label or 'call'} failed: {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                self.sleep(delay)

        raise RuntimeError("unreachable")
