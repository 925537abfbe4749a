"""
HTTP client for scenarios
=========================
Thin aiohttp wrapper that times every request and feeds the run's built-in
request metrics. Failures come back as Response values (status 0 plus an
error label for timeouts and connection problems), never as exceptions.
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import urljoin

import aiohttp

from stress_metrics import (
    FAILED_REQUESTS,
    HTTP_REQ_CONNECTION_ERRORS,
    HTTP_REQ_DURATION,
    HTTP_REQ_FAILED,
    HTTP_REQ_TIMEOUTS,
    HTTP_REQS,
    SUCCESSFUL_REQUESTS,
    MetricsRegistry,
)

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "StressTest/2.0",
    "Accept": "application/json",
}


def _positive_timeout(timeout: float) -> float:
    if not timeout > 0:
        raise ValueError(f"timeout must be a positive number of seconds, got {timeout}")
    return float(timeout)


@dataclass
class Response:
    """Outcome of a single request."""
    method: str
    url: str
    status: int
    body: bytes = b""
    elapsed_ms: float = 0.0
    error: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None and 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON. Raises ValueError on malformed payloads."""
        return json.loads(self.body) if self.body else None


class HttpClient:
    """
    Scenario-facing HTTP client.

    Relative URLs are resolved against `base_url`. Each call carries its own
    timeout so a stuck request cannot hold up the end of the run.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        metrics: MetricsRegistry,
        base_url: str = "",
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.session = session
        self.metrics = metrics
        self.base_url = base_url.rstrip("/")
        self.timeout = _positive_timeout(timeout)
        self.headers = {**DEFAULT_HEADERS, **(headers or {})}

    def _url(self, url: str) -> str:
        if url.startswith("http://") or url.startswith("https://"):
            return url
        if not self.base_url:
            return url
        return urljoin(self.base_url + "/", url.lstrip("/"))

    def _record(self, response: Response):
        m = self.metrics
        m.increment(HTTP_REQS)
        if response.status:
            m.record_duration(HTTP_REQ_DURATION, response.elapsed_ms)
        m.record_bool(HTTP_REQ_FAILED, not response.ok)
        if response.ok:
            m.increment(SUCCESSFUL_REQUESTS)
        else:
            m.increment(FAILED_REQUESTS)

        if response.error == "Timeout":
            m.increment(HTTP_REQ_TIMEOUTS)
        elif response.error and response.error.startswith("ConnectionError"):
            m.increment(HTTP_REQ_CONNECTION_ERRORS)

    async def request(
        self,
        method: str,
        url: str,
        *,
        body: Any = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Response:
        method = method.upper()
        full_url = self._url(url)
        request_headers = {**self.headers, **(headers or {})}
        timeout = self.timeout if timeout is None else _positive_timeout(timeout)
        client_timeout = aiohttp.ClientTimeout(total=timeout)

        start = time.perf_counter()
        try:
            async with self.session.request(
                method,
                full_url,
                data=body,
                json=json,
                headers=request_headers,
                timeout=client_timeout,
            ) as resp:
                payload = await resp.read()
                latency = (time.perf_counter() - start) * 1000
                response = Response(
                    method=method,
                    url=full_url,
                    status=resp.status,
                    body=payload,
                    elapsed_ms=latency,
                    headers=dict(resp.headers),
                )
        except asyncio.TimeoutError:
            response = Response(
                method, full_url, 0,
                elapsed_ms=(time.perf_counter() - start) * 1000,
                error="Timeout",
            )
        except aiohttp.ClientConnectorError as e:
            response = Response(
                method, full_url, 0,
                elapsed_ms=(time.perf_counter() - start) * 1000,
                error=f"ConnectionError: {type(e).__name__}",
            )
        except aiohttp.ClientError as e:
            response = Response(
                method, full_url, 0,
                elapsed_ms=(time.perf_counter() - start) * 1000,
                error=type(e).__name__,
            )

        if response.error:
            logger.debug("%s %s failed: %s", method, full_url, response.error)
        self._record(response)
        return response

    async def get(self, url: str, **kwargs) -> Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, body: Any = None, headers: Optional[Dict[str, str]] = None, **kwargs) -> Response:
        return await self.request("POST", url, body=body, headers=headers, **kwargs)

    async def put(self, url: str, body: Any = None, headers: Optional[Dict[str, str]] = None, **kwargs) -> Response:
        return await self.request("PUT", url, body=body, headers=headers, **kwargs)

    async def delete(self, url: str, **kwargs) -> Response:
        return await self.request("DELETE", url, **kwargs)


@asynccontextmanager
async def open_client(
    metrics: MetricsRegistry,
    base_url: str = "",
    timeout: float = 30.0,
    headers: Optional[Dict[str, str]] = None,
    concurrency: int = 100,
    verify_ssl: bool = True,
) -> AsyncIterator[HttpClient]:
    """Open a pooled aiohttp session and wrap it in an HttpClient."""
    timeout = _positive_timeout(timeout)
    connector_kwargs: Dict[str, Any] = {}
    if not verify_ssl:
        connector_kwargs["ssl"] = False
    connector = aiohttp.TCPConnector(
        limit=max(1, concurrency) * 2,
        limit_per_host=max(1, concurrency) * 2,
        keepalive_timeout=30,
        **connector_kwargs,
    )
    session_timeout = aiohttp.ClientTimeout(total=timeout, connect=min(10.0, timeout))
    async with aiohttp.ClientSession(timeout=session_timeout, connector=connector) as session:
        yield HttpClient(session, metrics, base_url=base_url, timeout=timeout, headers=headers)
