from __future__ import annotations

import logging
import time
from typing import Any

import httpx

RETRYABLE_HTTP_STATUSES = {408, 425, 429, 500, 502, 503, 504}

logger = logging.getLogger(__name__)


class RetryingHttpClient:
    """httpx client wrapper that retries timeouts, network errors and retryable statuses."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float,
        max_fetch_retries: int = 2,
        retry_backoff_seconds: float = 0.6,
        headers: dict[str, str] | None = None,
        label: str = "http",
    ) -> None:
        self.label = label
        self.max_fetch_retries = max(0, max_fetch_retries)
        self.retry_backoff_seconds = max(0.0, retry_backoff_seconds)
        self.client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            headers={"User-Agent": "stocksync/0.1", **(headers or {})},
            follow_redirects=True,
        )

    def close(self) -> None:
        self.client.close()

    def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        attempts = self.max_fetch_retries + 1
        for attempt in range(attempts):
            try:
                response = self.client.request(method, url, **kwargs)
                if response.status_code in RETRYABLE_HTTP_STATUSES:
                    raise httpx.HTTPStatusError(
                        f"Retryable status {response.status_code} for {url}",
                        request=response.request,
                        response=response,
                    )
                response.raise_for_status()
                return response
            except (httpx.TimeoutException, httpx.NetworkError, httpx.HTTPStatusError) as exc:
                if isinstance(exc, httpx.HTTPStatusError):
                    status = exc.response.status_code if exc.response is not None else None
                    if status not in RETRYABLE_HTTP_STATUSES:
                        raise

                if attempt >= attempts - 1:
                    raise

                backoff = self.retry_backoff_seconds * (2**attempt)
                if backoff > 0:
                    time.sleep(backoff)
                logger.debug(
                    "Retrying %s %s for %s after error (%s), attempt %s/%s",
                    method,
                    url,
                    self.label,
                    exc,
                    attempt + 1,
                    attempts,
                )
        raise RuntimeError(f"Unreachable retry state for {url}")
