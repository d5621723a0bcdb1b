# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

import time
from dataclasses import dataclass
from typing import Callable, TypeVar

T = TypeVar("T")


class RetryError(RuntimeError):
    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int
    delay: float


def retry_call(
    fn: Callable[[], T],
    *,
    policy: RetryPolicy,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
    name: str | None = None,
) -> T:
    """
    Call *fn* until it succeeds or the policy is exhausted.

    on_retry(attempt, exc) fires before every attempt after the first, so a
    call that fails N times reports N-1 retries.
    """
    last_exc = None
    for attempt in range(1, policy.attempts + 1):
        if attempt > 1:
            if on_retry:
                on_retry(attempt, last_exc)
            sleep(policy.delay)
        try:
            return fn()
        except retry_on as exc:
            last_exc = exc
    label = name or getattr(fn, "__name__", "call")
    raise RetryError(
        f"{label} failed after {policy.attempts} attempts: {last_exc}",
        attempts=policy.attempts,
    ) from last_exc
