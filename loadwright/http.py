"""
HTTP client wrapper: issues requests, times them and records metrics.

Transport failures never raise. A refused connection, a timeout or an
invalid URL comes back as a ``Response`` with ``status == 0`` and ``error``
set, so scenario checks can still run against it. There is no automatic
retry; scenarios that want one write it themselves.

Usage:
    client = HttpClient(registry, scenario="smoke")
    res = client.get("http://localhost:4000/healthz")
    res.status, res.timings.duration, res.json().get("status")
"""

from __future__ import annotations

import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Container, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import httpx

from loadwright.metrics.collector import MetricsRegistry
from loadwright.metrics.sample import HTTP_REQ_DURATION, HTTP_REQ_FAILED, HTTP_REQS

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
MAX_BATCH_PARALLEL = 20
SLOW_REQUEST_MS = 3000.0
SLOW_WARNING_INTERVAL = 1.0

_MISSING = object()


class JsonResult:
    """
    Parsed response body: either ``ok`` with a value, or malformed.

    Accessors never raise; a missing field or a type mismatch yields the
    default.

    Example:
        body = res.json()
        token = body.get("token")
        user_id = body.get("user", "id")
        first = body.as_list()
    """

    __slots__ = ("ok", "value", "error")

    def __init__(self, ok: bool, value: Any = None, error: Optional[str] = None) -> None:
        self.ok = ok
        self.value = value
        self.error = error

    @classmethod
    def parse(cls, text: str) -> "JsonResult":
        try:
            return cls(True, json.loads(text))
        except (ValueError, TypeError) as exc:
            return cls(False, error=str(exc))

    def get(self, *path: Union[str, int], default: Any = None) -> Any:
        """Walk dict keys / list indices; return ``default`` on any miss."""
        if not self.ok:
            return default
        node = self.value
        for step in path:
            if isinstance(node, Mapping) and isinstance(step, str):
                node = node.get(step, _MISSING)
            elif isinstance(node, list) and isinstance(step, int) and -len(node) <= step < len(node):
                node = node[step]
            else:
                return default
            if node is _MISSING:
                return default
        return node

    def as_list(self) -> Optional[List[Any]]:
        """The body as a list, or None when it is not a JSON array."""
        if self.ok and isinstance(self.value, list):
            return self.value
        return None

    def __repr__(self) -> str:
        if self.ok:
            return f"JsonResult(ok, {self.value!r})"
        return f"JsonResult(malformed, {self.error!r})"


@dataclass(frozen=True)
class Timings:
    """Request timing. ``duration`` is in milliseconds."""

    started_at: float
    duration: float


@dataclass
class Response:
    """
    Result of one request.

    Attributes:
        method: HTTP method.
        url: Requested URL.
        status: HTTP status code, 0 for transport failures.
        body: Response text ("" on failure).
        headers: Response headers (lower-cased names).
        timings: Start time and duration.
        error: Transport error description, None on success.
    """

    method: str
    url: str
    status: int
    timings: Timings
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> JsonResult:
        if self.error is not None:
            return JsonResult(False, error=self.error)
        return JsonResult.parse(self.body)


@dataclass(frozen=True)
class Request:
    """A request description, as passed to ``HttpClient.batch``."""

    method: str
    url: str
    body: Any = None
    headers: Optional[Mapping[str, str]] = None
    timeout: Optional[float] = None
    tags: Optional[Mapping[str, str]] = None


BatchItem = Union[Request, Tuple[Any, ...]]


def status_group(status: int) -> str:
    """``2xx``-style class for a status; transport failures are ``0xx``."""
    return f"{status // 100}xx"


def request_name(url: str) -> str:
    """Default ``name`` tag: the URL without its query string."""
    return url.split("?", 1)[0]


class HttpClient:
    """
    Thread-safe HTTP client bound to one scenario.

    Shares one ``httpx.Client`` (and its connection pool) between all workers
    of the scenario. Every request records ``http_reqs``,
    ``http_req_duration`` (ms) and ``http_req_failed`` tagged with the
    scenario name, method, name, status and status group.
    """

    def __init__(
        self,
        registry: MetricsRegistry,
        *,
        scenario: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
        max_connections: int = 1000,
        slow_request_ms: float = SLOW_REQUEST_MS,
    ) -> None:
        self._registry = registry
        self.scenario = scenario
        self.timeout = timeout
        self._slow_request_ms = slow_request_ms
        self._slow_lock = threading.Lock()
        self._last_slow_warning = -float("inf")
        self._slow_suppressed = 0
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections,
            ),
        )

    def request(
        self,
        method: str,
        url: str,
        body: Any = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        tags: Optional[Mapping[str, str]] = None,
        expected_statuses: Optional[Container[int]] = None,
    ) -> Response:
        """Issue one request. Never raises for transport problems.

        ``expected_statuses`` overrides which codes count as success for
        ``http_req_failed`` (default: 200-399).
        """
        response = self._send(method, url, body, headers=headers, timeout=timeout)
        self._record(response, tags, expected_statuses)
        return response

    def _send(
        self,
        method: str,
        url: str,
        body: Any = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Response:
        method = method.upper()
        send_headers = dict(headers or {})
        content: Optional[Union[str, bytes]] = None
        if isinstance(body, (dict, list)):
            content = json.dumps(body)
            if not any(k.lower() == "content-type" for k in send_headers):
                send_headers["Content-Type"] = "application/json"
        elif body is not None:
            content = body

        started_at = time.time()
        t0 = time.perf_counter()
        try:
            raw = self._client.request(
                method,
                url,
                content=content,
                headers=send_headers,
                timeout=timeout if timeout is not None else self.timeout,
            )
            duration = (time.perf_counter() - t0) * 1000
            response = Response(
                method=method,
                url=url,
                status=raw.status_code,
                timings=Timings(started_at=started_at, duration=duration),
                body=raw.text,
                headers={k.lower(): v for k, v in raw.headers.items()},
            )
        except httpx.TimeoutException as exc:
            response = self._failure(method, url, started_at, t0, f"request timeout: {exc}")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            response = self._failure(method, url, started_at, t0, f"{type(exc).__name__}: {exc}")
        except RuntimeError:
            # Only a closed client is expected here (late, abandoned iterations).
            if not self._client.is_closed:
                raise
            response = self._failure(method, url, started_at, t0, "client closed")
        return response

    def get(self, url: str, **kwargs: Any) -> Response:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, body: Any = None, **kwargs: Any) -> Response:
        return self.request("POST", url, body, **kwargs)

    def options(self, url: str, **kwargs: Any) -> Response:
        return self.request("OPTIONS", url, **kwargs)

    def batch(self, requests: Sequence[BatchItem]) -> List[Response]:
        """
        Issue requests concurrently and return responses in submission order.

        Items are ``Request`` objects or k6-style tuples
        ``(method, url[, body[, params]])`` where ``params`` may hold
        ``headers``, ``timeout`` and ``tags``.

        Waits at most the largest per-request timeout. A member still
        running after that is returned, and recorded, as a failed status-0
        timeout response; its late result is discarded.
        """
        items = [_as_request(item) for item in requests]
        if not items:
            return []
        deadline = time.perf_counter() + max(
            item.timeout if item.timeout is not None else self.timeout for item in items
        )
        pool = ThreadPoolExecutor(
            max_workers=min(len(items), MAX_BATCH_PARALLEL),
            thread_name_prefix=f"batch-{self.scenario}",
        )
        try:
            # Members only send; recording happens here so a member that
            # outlives the deadline is counted once, as a failure.
            futures = [
                (item, time.time(), pool.submit(
                    self._send,
                    item.method,
                    item.url,
                    item.body,
                    headers=item.headers,
                    timeout=item.timeout,
                ))
                for item in items
            ]
            responses = []
            for item, submitted_at, future in futures:
                remaining = max(0.0, deadline - time.perf_counter())
                try:
                    response = future.result(timeout=remaining)
                except FutureTimeoutError:
                    response = Response(
                        method=item.method.upper(),
                        url=item.url,
                        status=0,
                        timings=Timings(
                            started_at=submitted_at,
                            duration=(time.time() - submitted_at) * 1000,
                        ),
                        error="batch timeout",
                    )
                self._record(response, item.tags)
                responses.append(response)
            return responses
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _failure(
        self, method: str, url: str, started_at: float, t0: float, error: str
    ) -> Response:
        return Response(
            method=method,
            url=url,
            status=0,
            timings=Timings(
                started_at=started_at, duration=(time.perf_counter() - t0) * 1000
            ),
            error=error,
        )

    def _record(
        self,
        response: Response,
        extra: Optional[Mapping[str, str]],
        expected_statuses: Optional[Container[int]] = None,
    ) -> None:
        tags: Dict[str, Any] = {
            "scenario": self.scenario,
            "method": response.method,
            "name": request_name(response.url),
            "status": response.status,
            "status_group": status_group(response.status),
        }
        if extra:
            tags.update(extra)
        ts = response.timings.started_at
        self._registry.record(HTTP_REQS, 1, tags, timestamp=ts)
        self._registry.record(HTTP_REQ_DURATION, response.timings.duration, tags, timestamp=ts)
        if expected_statuses is None:
            failed = response.status == 0 or response.status >= 400
        else:
            failed = response.status not in expected_statuses
        self._registry.record(HTTP_REQ_FAILED, 1 if failed else 0, tags, timestamp=ts)

        if response.error is not None:
            logger.debug("%s %s failed: %s", response.method, response.url, response.error)
        elif response.timings.duration > self._slow_request_ms:
            self._warn_slow(response, tags["name"])

    def _warn_slow(self, response: Response, name: str) -> None:
        # At most one warning per SLOW_WARNING_INTERVAL; the rest are counted.
        now = time.monotonic()
        with self._slow_lock:
            if now - self._last_slow_warning < SLOW_WARNING_INTERVAL:
                self._slow_suppressed += 1
                return
            suppressed = self._slow_suppressed
            self._slow_suppressed = 0
            self._last_slow_warning = now
        logger.warning(
            "Slow request: %s %s took %.0fms (%d more slow request(s) not logged)",
            response.method, name, response.timings.duration, suppressed,
        )


def _as_request(item: BatchItem) -> Request:
    if isinstance(item, Request):
        return item
    method, url, *rest = item
    body = rest[0] if rest else None
    params: Mapping[str, Any] = (rest[1] if len(rest) > 1 else None) or {}
    return Request(
        method=method,
        url=url,
        body=body,
        headers=params.get("headers"),
        timeout=params.get("timeout"),
        tags=params.get("tags"),
    )
