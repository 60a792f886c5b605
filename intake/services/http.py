"""Retrying HTTP helper shared by the outbound integration clients.

Timeouts, connection errors and 5xx responses are retried with exponential
backoff; 4xx responses fail immediately.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 10.0


class IntegrationError(Exception):
    """Raised when an outbound call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def request_with_retries(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    service: str,
    json_body: Any = None,
    headers: dict[str, str] | None = None,
    content: bytes | None = None,
    error_cls: type[IntegrationError] = IntegrationError,
    max_retries: int = MAX_RETRIES,
) -> httpx.Response:
    """Execute an HTTP request with exponential-backoff retries."""
    last_error: Exception | None = None
    for attempt in range(1, max_retries + 1):
        try:
            response = client.request(
                method, url, json=json_body, content=content, headers=headers,
            )
            if response.status_code >= 500:
                raise error_cls(
                    f"{service} server error {response.status_code}: {response.text[:200]}",
                    status_code=response.status_code,
                )
            if response.status_code >= 400:
                raise error_cls(
                    f"{service} client error {response.status_code}: {response.text[:200]}",
                    status_code=response.status_code,
                )
            return response

        except (httpx.TimeoutException, httpx.ConnectError) as exc:
            last_error = exc
            logger.warning(
                "%s attempt %d/%d failed (%s).",
                service, attempt, max_retries, type(exc).__name__,
            )
        except IntegrationError as exc:
            if exc.status_code and exc.status_code >= 500:
                last_error = exc
                logger.warning("%s server error on attempt %d/%d.", service, attempt, max_retries)
            else:
                raise  # 4xx errors are not retried

        if attempt < max_retries:
            time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

    raise error_cls(f"{service} request failed after {max_retries} attempts: {last_error}")
