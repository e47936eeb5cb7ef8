# OOP boundary for external i/o
# all http/keys/pooling live here, together with the error taxonomy a single sample can end with
# one shared session and one bounded worker pool serve every concurrent sample

from __future__ import annotations
import json
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any, Optional
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import HOST, MAX_CONNECTIONS, REQUEST_TIMEOUT, TIMEMACHINE_PATH
from .context import Context
from .models import Coordinates, SampleRequest

logger = logging.getLogger(__name__)


class SampleError(RuntimeError):
    # base of every error a single sample (and so a whole aggregation) can end with
    pass


class TransportError(SampleError):
    pass


class ParseError(SampleError):
    pass


class EmptyResultError(SampleError):
    # the time machine endpoint legitimately answers some queries without records
    pass


class RequestCancelledError(SampleError):
    pass


class RemoteError(SampleError):
    # keeps enough context for the caller to log or re-issue the failed sample
    def __init__(self, status: int, date: datetime, location: Coordinates, cause: str):
        super().__init__(f"[{status}] - {cause}")
        self.status = status
        self.date = date
        self.location = location
        self.cause = cause


class RateLimitError(RemoteError):
    pass


class OpenWeatherClient:
    # this class encapsulates provider details like base URL, params, auth and the connection pool
    BASE_URL = f"https://{HOST}{TIMEMACHINE_PATH}"

    def __init__(
        self,
        token: str,
        timeout: float = REQUEST_TIMEOUT,
        max_connections: int = MAX_CONNECTIONS,
        session: Optional[requests.Session] = None,
        user_agent: str = "dailytemp/0.1",
    ):
        if max_connections < 1:
            raise ValueError(f"max_connections must be >= 1 (got {max_connections})")

        self.token = token
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_connections = max_connections

        # failures are surfaced to the caller as they are, never retried here
        self._retry = Retry(total=0, read=False, redirect=False, raise_on_status=False)

        self.session = session or self._build_session()
        # workers beyond the pool size would only wait for a connection, so queue them here instead
        self._pool = ThreadPoolExecutor(max_workers=max_connections, thread_name_prefix="openweather")
        self._closed = threading.Event()

    def _build_session(self) -> requests.Session:
        # pool_block makes extra requests wait for a free connection rather than open new ones
        s = requests.Session()
        s.headers.update({"User-Agent": self.user_agent})
        adapter = HTTPAdapter(
            pool_connections=1,
            pool_maxsize=self.max_connections,
            pool_block=True,
            max_retries=self._retry,
        )
        s.mount("http://", adapter)
        s.mount("https://", adapter)
        return s

    def submit(self, ctx: Context, request: SampleRequest) -> "Future[float]":
        # start one sample without waiting for it; the future raises a SampleError on failure
        if self._closed.is_set():
            raise RuntimeError("client is closed")
        return self._pool.submit(self._fetch, ctx, request)

    def get_temp_by_time(self, ctx: Context, when: datetime, location: Coordinates) -> float:
        future = self.submit(ctx, SampleRequest(when, location))

        # whichever comes first: the sample finishing or the caller giving up
        wake = threading.Event()
        future.add_done_callback(lambda _: wake.set())
        unregister = ctx.add_callback(wake.set)
        try:
            wake.wait()
        finally:
            unregister()

        if not future.done():
            # the request keeps running in its worker and releases its response there
            future.cancel()
            raise RequestCancelledError(f"request for {when.isoformat()} {ctx.reason or 'cancelled'}")
        if future.cancelled():
            raise RequestCancelledError(f"request for {when.isoformat()} was dropped before it started")
        return future.result()

    def _fetch(self, ctx: Context, request: SampleRequest) -> float:
        if ctx.cancelled:
            raise RequestCancelledError(f"request for {request.timestamp.isoformat()} {ctx.reason}")

        loc = request.location
        params = {
            "lat": f"{loc.lat:f}",
            "lon": f"{loc.lon:f}",
            "dt": request.unix,
            "appid": self.token,
            "units": "metric",
        }
        logger.debug("GET timemachine lat=%f lon=%f dt=%d", loc.lat, loc.lon, request.unix)

        # requests only bounds connect and each socket read, the whole sample gets one deadline
        deadline = time.monotonic() + self.timeout
        try:
            resp = self.session.get(self.BASE_URL, params=params, timeout=self.timeout, stream=True)
        except requests.RequestException as exc:
            raise TransportError(f"send request error: {exc}") from exc

        try:
            body = self._read_body(resp, request, deadline)
            return self._read_temperature(resp.status_code, body, request)
        finally:
            resp.close()

    def _read_body(self, resp: requests.Response, request: SampleRequest, deadline: float) -> bytes:
        # single bytes so the deadline is checked as soon as anything arrives; bodies are small
        chunks = []
        try:
            for chunk in resp.iter_content(chunk_size=1):
                if time.monotonic() > deadline:
                    raise TransportError(f"request for dt={request.unix} exceeded {self.timeout}s")
                chunks.append(chunk)
        except requests.RequestException as exc:
            raise TransportError(f"read response error: {exc}") from exc
        return b"".join(chunks)

    def _read_temperature(self, status: int, body: bytes, request: SampleRequest) -> float:
        if status == 429:
            raise RateLimitError(status, request.timestamp, request.location, "request limit exceeded")
        if status != 200:
            # include a short response snippet to speed up triage
            snippet = body.decode("utf-8", errors="replace")[:300]
            raise RemoteError(status, request.timestamp, request.location, snippet)

        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise ParseError(f"invalid JSON for dt={request.unix}: {exc}") from exc

        return first_temperature(payload)

    def close(self) -> None:
        # waits for in-flight requests so every response is released before the session goes away
        self._closed.set()
        self._pool.shutdown(wait=True, cancel_futures=True)
        self.session.close()

    def __enter__(self) -> "OpenWeatherClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def first_temperature(payload: Any) -> float:
    # time machine shape: {"data": [{"temp": 12.3, ...}, ...]}, only data[0].temp is used
    if not isinstance(payload, dict):
        raise ParseError(f"unexpected response document: {type(payload).__name__}")

    records = payload.get("data")
    if records is None or records == []:
        raise EmptyResultError("response has no temperature records")
    if not isinstance(records, list):
        raise ParseError("unexpected response shape: 'data' is not a list")

    first = records[0]
    temp = first.get("temp") if isinstance(first, dict) else None
    if isinstance(temp, bool) or not isinstance(temp, (int, float)):
        raise ParseError(f"unexpected response shape: data[0].temp is {temp!r}")
    return float(temp)
