from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter

from blob_indexer.errors import ClientError, ClientTemporarilyUnavailable
from blob_indexer.logging import log
from blob_indexer.metrics import CLIENT_ERRORS, CLIENT_REQUESTS, CLIENT_RETRIES
from blob_indexer.retry import RetryPolicy, default_call_policy

RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}


def build_session(pool_size: int = 10) -> requests.Session:
    # keep-alive + a connection per worker thread
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"Accept": "application/json"})
    return session


class JsonHttpClient:
    """
    Thin JSON-over-HTTP base shared by the beacon and index clients.

    Every request goes through the retry policy. Status handling:

    - 2xx          -> decoded JSON body (None for an empty body)
    - 404          -> None when ``allow_not_found``
    - 408/429/5xx  -> ClientTemporarilyUnavailable (retried)
    - other        -> ClientError
    """

    name = "http"

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        network: str = "mainnet",
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or build_session()
        self.timeout = timeout
        self.retry_policy = retry_policy or default_call_policy()
        self.network = network

    def _headers(self) -> dict:
        return {}

    def _on_retry(self, attempt: int, delay: float, error: Exception):
        CLIENT_RETRIES.labels(network=self.network, client=self.name).inc()

    def _send(self, method: str, path: str, *, json: Any = None, allow_not_found: bool = False):
        url = f"{self.base_url}{path}"
        CLIENT_REQUESTS.labels(network=self.network, client=self.name).inc()

        try:
            resp = self.session.request(
                method,
                url,
                json=json,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            CLIENT_ERRORS.labels(network=self.network, client=self.name).inc()
            raise ClientTemporarilyUnavailable(
                f"{method} {path}: {e}", client=self.name
            ) from e

        if resp.status_code == 404 and allow_not_found:
            return None

        if resp.status_code >= 400:
            CLIENT_ERRORS.labels(network=self.network, client=self.name).inc()
            body = resp.text[:200]
            if resp.status_code in RETRYABLE_STATUS:
                raise ClientTemporarilyUnavailable(
                    f"{method} {path} -> HTTP {resp.status_code}: {body}",
                    client=self.name,
                    status=resp.status_code,
                )
            log.error(
                "client_request_rejected",
                extra={
                    "client": self.name,
                    "method": method,
                    "path": path,
                    "status": resp.status_code,
                    "body": body,
                },
            )
            raise ClientError(
                f"{method} {path} -> HTTP {resp.status_code}: {body}",
                client=self.name,
                status=resp.status_code,
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise ClientError(
                f"{method} {path}: invalid JSON response", client=self.name
            ) from e

    def request(self, method: str, path: str, *, json: Any = None, allow_not_found: bool = False):
        return self.retry_policy.call(
            lambda: self._send(method, path, json=json, allow_not_found=allow_not_found),
            description=f"{self.name} {method} {path}",
            on_retry=self._on_retry,
        )
