import time
from collections.abc import Callable
from typing import TypeVar

import requests


T = TypeVar("T")

RATE_LIMIT_STATUSES = frozenset({429, 503})


class RetryExhaustedError(RuntimeError):
    pass


class RateLimitedError(RuntimeError):
    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"rate limited by {url} (HTTP {status_code})")
        self.url = url
        self.status_code = status_code


def run_with_retries(
    fn: Callable[[], T],
    *,
    max_retries: int,
    backoff_seconds: float,
    on_attempt_failure: Callable[[int, Exception], None] | None = None,
    should_retry: Callable[[Exception], bool] | None = None,
) -> T:
    last_error: Exception | None = None

    for attempt in range(1, max_retries + 2):
        try:
            return fn()
        except Exception as exc:
            last_error = exc
            if on_attempt_failure:
                on_attempt_failure(attempt, exc)

            retry_allowed = True if should_retry is None else should_retry(exc)
            if attempt > max_retries or not retry_allowed:
                break
            time.sleep(backoff_seconds * attempt)

    raise RetryExhaustedError(str(last_error)) from last_error


def is_rate_limited(exc: Exception) -> bool:
    return isinstance(exc, RateLimitedError)


def rate_limited_get(
    session: requests.Session,
    url: str,
    *,
    timeout: tuple[float, float],
    delay_seconds: float,
    max_retries: int,
    backoff_seconds: float,
    on_attempt_failure: Callable[[int, Exception], None] | None = None,
) -> requests.Response:
    """
    GET with a fixed politeness delay before every attempt.

    429 and 503 answers are retried with linear backoff; every other status is
    returned to the caller untouched. Transport errors are not retried.
    """

    def attempt() -> requests.Response:
        if delay_seconds > 0:
            time.sleep(delay_seconds)
        response = session.get(url, timeout=timeout)
        if response.status_code in RATE_LIMIT_STATUSES:
            raise RateLimitedError(url, response.status_code)
        return response

    return run_with_retries(
        attempt,
        max_retries=max_retries,
        backoff_seconds=backoff_seconds,
        on_attempt_failure=on_attempt_failure,
        should_retry=is_rate_limited,
    )
