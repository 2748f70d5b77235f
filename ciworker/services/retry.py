"""
Retry policies for fallible backend operations.

A RetryPolicy only carries the budget (attempts and the fixed delay between
them); tenacity does the looping. The sleep function is injectable so callers
and tests can run without wall-clock waits.
"""
import time
from dataclasses import dataclass
from typing import Any, Callable, Tuple, Type, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from ciworker.services.log import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    delay: float = 0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay < 0:
            raise ValueError("delay must not be negative")

    def call(
            self,
            fn: Callable[[], T],
            retry_on: Tuple[Type[BaseException], ...] = (Exception,),
            sleep: Callable[[float], Any] = time.sleep,
            description: str = "operation",
    ) -> T:
        """Run ``fn`` until it returns, re-raising the last error once the budget is spent"""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.delay),
            retry=retry_if_exception_type(retry_on),
            before_sleep=_log_retry(description),
            sleep=sleep,
            reraise=True,
        )
        return retrying(fn)

    def call_until(
            self,
            fn: Callable[[], T],
            should_retry: Callable[[T], bool],
            sleep: Callable[[float], Any] = time.sleep,
            description: str = "operation",
    ) -> T:
        """Run ``fn`` while ``should_retry`` holds for its result; return the last result"""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.delay),
            retry=retry_if_result(should_retry),
            before_sleep=_log_retry(description),
            retry_error_callback=_last_result,
            sleep=sleep,
        )
        return retrying(fn)


def _last_result(retry_state: RetryCallState) -> Any:
    return retry_state.outcome.result()


def _log_retry(description: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        detail = repr(outcome.exception()) if outcome.failed else repr(outcome.result())
        logger.debug(f"Retrying {description}", {
            "attempt": retry_state.attempt_number,
            "last": detail,
        })
    return before_sleep
