# in-process transport for the client's session so tests never hit the network

from __future__ import annotations
import io
import json
import threading
import time
from urllib.parse import parse_qs, urlparse

import pytest
import requests
from requests.adapters import BaseAdapter

from dailytemp.client import OpenWeatherClient


class _Body:
    # stands in for the urllib3 response; releasing it hands the "connection" back
    def __init__(self, transport: "FakeTransport", data: bytes, delay: float = 0.0):
        self._transport = transport
        self._data = io.BytesIO(data)
        self._delay = delay
        self._released = False

    def read(self, amt=None):
        # a slow server trickles its body out one byte at a time
        if self._delay:
            time.sleep(self._delay)
            return self._data.read(1)
        return self._data.read(amt)

    def close(self):
        self.release_conn()

    def release_conn(self):
        if not self._released:
            self._released = True
            self._transport._release()


# counts connections like a pool would and fails loudly when the limit is crossed
# the handler gets the requested dt (and the latitude with with_lat) and returns
# (status, body) or (status, body, seconds per body byte)
class FakeTransport(BaseAdapter):

    def __init__(self, handler, max_concurrent=None, with_lat=False):
        super().__init__()
        self.handler = handler
        self.max_concurrent = max_concurrent
        self.with_lat = with_lat
        self.lock = threading.Lock()
        self.requested_dts = []
        self.active = 0
        self.peak = 0
        self.open_responses = 0

    def send(self, request, **kwargs):
        qs = parse_qs(urlparse(request.url).query)
        dt = int(qs["dt"][0])
        with self.lock:
            if self.max_concurrent is not None and self.active >= self.max_concurrent:
                raise requests.ConnectionError("connection pool exhausted")
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.requested_dts.append(dt)
        try:
            if self.with_lat:
                answer = self.handler(dt, float(qs["lat"][0]))
            else:
                answer = self.handler(dt)
        finally:
            with self.lock:
                self.active -= 1

        status, body = answer[0], answer[1]
        delay = answer[2] if len(answer) > 2 else 0.0
        data = (json.dumps(body) if not isinstance(body, str) else body).encode("utf-8")

        resp = requests.Response()
        resp.status_code = status
        resp.encoding = "utf-8"
        resp.url = request.url
        resp.request = request
        resp.raw = _Body(self, data, delay)
        with self.lock:
            self.open_responses += 1
        return resp

    def _release(self):
        with self.lock:
            self.open_responses -= 1

    def close(self):
        pass


def temp_body(temp):
    return {"lat": 0.0, "lon": 0.0, "data": [{"dt": 0, "temp": temp}]}


@pytest.fixture
def make_client():
    clients = []

    def _make(transport, **kwargs):
        session = requests.Session()
        session.mount("https://", transport)
        client = OpenWeatherClient("secret", session=session, **kwargs)
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()
