# marketplace/utils/retry.py
import logging

import redis
import requests
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


def is_transient_http_error(exc: BaseException) -> bool:
    """Timeouty, zerwane polaczenia, 429 i 5xx. Odpowiedz 4xx sie nie zmieni."""
    if isinstance(exc, requests.HTTPError):
        resp = exc.response
        return resp is not None and (resp.status_code == 429 or resp.status_code >= 500)
    return isinstance(exc, requests.RequestException)


def http_retry(attempts: int = 3, max_wait: float = 3):
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=max_wait),
        retry=retry_if_exception(is_transient_http_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


def gateway_retry():
    # bramka deduplikuje po Idempotency-Key, ponowienie nie tworzy drugiej platnosci
    return http_retry(attempts=5, max_wait=5)


def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(redis.RedisError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
