"""HTTP client with timeouts and retry/backoff."""
from __future__ import annotations

import json
import logging
import random
import time
from typing import Any, Dict, Optional

import requests

from . import config

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


class UpstreamError(RuntimeError):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class HttpClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: Optional[int] = None,
        retry_max: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
    ) -> None:
        self.api_key = api_key
        self.timeout = config.HTTP_TIMEOUT_SECONDS if timeout is None else timeout
        self.retry_max = max(1, config.HTTP_RETRY_MAX if retry_max is None else retry_max)
        self.backoff_base = config.HTTP_BACKOFF_BASE if backoff_base is None else backoff_base
        self.backoff_max = config.HTTP_BACKOFF_MAX if backoff_max is None else backoff_max
        self.session = requests.Session()

    def post_json(
        self,
        url: str,
        body: Dict[str, Any],
        field_mask: Optional[str] = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Goog-Api-Key"] = self.api_key
        if field_mask:
            headers["X-Goog-FieldMask"] = field_mask
        if extra_headers:
            headers.update(extra_headers)

        payload = json.dumps(body)
        return self._request(
            url, lambda: self.session.post(url, data=payload, headers=headers, timeout=self.timeout)
        )

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        headers = {"Accept": "application/json"}
        if extra_headers:
            headers.update(extra_headers)
        return self._request(
            url, lambda: self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        )

    def _request(self, url: str, send) -> Dict[str, Any]:
        for attempt in range(1, self.retry_max + 1):
            try:
                resp = send()
            except requests.RequestException:
                if attempt >= self.retry_max:
                    raise
                self._sleep_backoff(attempt)
                continue

            status = resp.status_code
            if status == 200:
                try:
                    return resp.json()
                except ValueError as exc:
                    logger.error("Non-JSON response from %s", url)
                    raise UpstreamError(f"Non-JSON response from {url}", status) from exc

            if status in RETRYABLE_STATUSES:
                logger.warning("HTTP %s from %s (attempt %s)", status, url, attempt)
                if attempt >= self.retry_max:
                    raise UpstreamError(f"HTTP {status} from {url}", status)
                if not self._sleep_retry_after(resp):
                    self._sleep_backoff(attempt)
                continue

            # Non-retryable
            logger.error("HTTP %s from %s", status, url)
            raise UpstreamError(f"HTTP {status} from {url}", status)

        raise RuntimeError("Unexpected HTTP retry loop exit")

    def _sleep_backoff(self, attempt: int) -> None:
        base = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        jitter = random.uniform(0, self.backoff_base)
        time.sleep(base + jitter)

    def _sleep_retry_after(self, resp: requests.Response) -> bool:
        retry_after = resp.headers.get("Retry-After")
        if not retry_after:
            return False
        try:
            delay = float(retry_after)
        except ValueError:
            return False
        delay = max(0.0, min(delay, self.backoff_max))
        time.sleep(delay)
        return True
