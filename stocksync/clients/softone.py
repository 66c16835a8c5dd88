from __future__ import annotations

import json
import logging

import httpx

from stocksync.clients.base import ErpSource
from stocksync.clients.http import RetryingHttpClient
from stocksync.config import ErpConnection
from stocksync.errors import ErpResponseError
from stocksync.extraction import ErpPayload, parse_erp_payload

logger = logging.getLogger(__name__)


class SoftOneClient(ErpSource):
    def __init__(
        self,
        connection: ErpConnection,
        timeout_seconds: float = 30.0,
        max_fetch_retries: int = 2,
        retry_backoff_seconds: float = 0.6,
    ) -> None:
        self.connection = connection
        self.http = RetryingHttpClient(
            base_url=connection.base_url,
            timeout_seconds=timeout_seconds,
            max_fetch_retries=max_fetch_retries,
            retry_backoff_seconds=retry_backoff_seconds,
            headers={"s1code": connection.s1_code},
            label="erp",
        )

    def fetch_payload(self) -> ErpPayload:
        response = self.http.request(
            "POST",
            "/list/item",
            json={
                "appId": self.connection.app_id,
                "filters": self.connection.filters,
                "token": self.connection.token,
            },
        )
        text = self._decode(response)
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ErpResponseError(f"ERP returned invalid JSON: {text[:200]}") from exc
        if not isinstance(payload, dict):
            raise ErpResponseError("ERP response is not a JSON object")

        parsed = parse_erp_payload(payload)
        logger.info("Fetched %s ERP rows (reported total %s)", len(parsed.rows), parsed.total_count)
        return parsed

    @staticmethod
    def _decode(response: httpx.Response) -> str:
        content_type = response.headers.get("content-type", "").lower()
        if "windows-1253" in content_type:
            return response.content.decode("cp1253", errors="replace")
        return response.text
