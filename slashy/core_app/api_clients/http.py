# slashy/core_app/api_clients/http.py
import logging

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from slashy.core_app.errors import UpstreamProviderError
from slashy.core_app.tools.setup_logger import setup_logger

logger = setup_logger(__name__.upper())

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
retry_wait = wait_random_exponential(multiplier=0.5, max=8)


class _RetryableStatus(Exception):
    def __init__(self, response: requests.Response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, (requests.ConnectionError, requests.Timeout, _RetryableStatus))


def send_request(session: requests.Session, method: str, url: str, *, service: str, timeout: float,
                 max_attempts: int = 1, **kwargs) -> requests.Response:
    """
    Send one vendor request with a timeout. Transient failures (connection errors,
    timeouts, 429 and 5xx) are retried with jittered backoff up to `max_attempts`;
    other non-2xx answers are raised immediately as UpstreamProviderError.
    """

    def attempt() -> requests.Response:
        response = session.request(method, url, timeout=timeout, **kwargs)
        if response.status_code in RETRYABLE_STATUS and max_attempts > 1:
            raise _RetryableStatus(response)
        return response

    retrying = Retrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=retry_wait,
        retry=retry_if_exception(_is_transient),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )

    try:
        response = retrying(attempt)
    except _RetryableStatus as e:
        response = e.response
    except requests.Timeout as e:
        logger.error(f"{service} request timed out: {method} {url}")
        raise UpstreamProviderError(f"{service} request timed out", status_code=504, provider=service) from e
    except requests.RequestException as e:
        logger.error(f"{service} request failed: {e}")
        raise UpstreamProviderError(f"{service} unavailable", status_code=502, details=str(e),
                                    provider=service) from e

    if not response.ok:
        body = response.text
        logger.error(f"{service} error: {response.status_code} - {body}")
        raise UpstreamProviderError(
            f"{service} error: {response.status_code}",
            status_code=response.status_code,
            details=body[:500] if body else None,
            provider=service,
        )
    return response


def parse_json(response: requests.Response, service: str):
    try:
        return response.json()
    except ValueError as e:
        logger.error(f"{service} returned a non-JSON body: {response.text[:200]}")
        raise UpstreamProviderError(f"Invalid response from {service}", status_code=502,
                                    provider=service) from e
