from __future__ import annotations

import time

from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Type, TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from utils.errors import FetchError, ScrapeError

T = TypeVar("T")


class RetryExhausted(ScrapeError):
    """Every allowed attempt failed; `last_error` is the final failure."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass
class RetryPolicy:
    """
    Exponential backoff with jitter, applied the same way to any operation.

    Sleep before retry n (1-based) is:
        base_delay * 2 ** (n - 1) + uniform(0, jitter)

    `max_retries` counts retries, so an operation runs at most
    `max_retries + 1` times. Only exceptions listed in `retry_on` are
    retried; anything else propagates immediately.
    """

    max_retries: int = 3
    base_delay: float = 2.0
    jitter: float = 1.0
    retry_on: Tuple[Type[BaseException], ...] = (FetchError,)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @property
    def max_attempts(self) -> int:
        return max(0, int(self.max_retries)) + 1

    def wait_strategy(self):
        return wait_exponential(multiplier=float(self.base_delay), exp_base=2) + wait_random(
            0, max(0.0, float(self.jitter))
        )

    def retrying(
        self,
        on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    ) -> Retrying:
        def _before_sleep(state: RetryCallState) -> None:
            if on_retry is not None and state.outcome is not None:
                on_retry(state.attempt_number, state.outcome.exception(), state.next_action.sleep)

        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait_strategy(),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=_before_sleep,
            sleep=self.sleep,
        )

    def call(
        self,
        fn: Callable[[], T],
        *,
        on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    ) -> Tuple[T, int]:
        """
        Run `fn` until it succeeds or attempts run out.

        Args:
            fn: Zero-argument callable to run.
            on_retry: Called as on_retry(attempt, error, delay) before each
                backoff sleep; attempt is the 1-based attempt that failed.

        Returns:
            (result, attempts_used)

        Raises:
            RetryExhausted: When the last allowed attempt fails with a
                retryable error.
        """
        used = 0
        try:
            for attempt in self.retrying(on_retry):
                with attempt:
                    result = fn()
                used = attempt.retry_state.attempt_number
        except RetryError as e:
            last = e.last_attempt
            err = last.exception()
            raise RetryExhausted(last.attempt_number, err) from err
        return result, used
