"""
Test helpers: canned OpenWeatherMap payloads, fake responses and executors.

HTTP is never touched: ``requests.get`` is patched and fed real
``requests.Response`` objects built by ``makeResponse``.
"""

import json
from concurrent.futures import Executor, Future

import requests

from weather_client import PNG_SIGNATURE

PARIS_JSON = {
    "name": "Paris",
    "main": {"temp": 18.7, "humidity": 64, "pressure": 1015},
    "weather": [{"description": "clear sky", "icon": "01d"}],
    "wind": {"speed": 3.6},
    "visibility": 10000,
    "sys": {"sunrise": 1700000000, "sunset": 1700036000},
}

ICON_BYTES = PNG_SIGNATURE + b"\x00\x00\x00\rIHDR fake icon"


def makeResponse(status=200, body=None, content=None, reason=None):
    """Build a real requests.Response without any network."""
    resp = requests.Response()
    resp.status_code = status
    resp.reason = reason or ("OK" if status < 400 else "Error")
    if content is None:
        content = json.dumps(body).encode("utf-8") if body is not None else b""
    resp._content = content
    resp.encoding = "utf-8"
    return resp


def routeGet(weatherResponse, iconResponse=None):
    """side_effect for requests.get that serves weather JSON and icon bytes by URL."""

    def fake(url, timeout=None):
        if "/img/wn/" in url:
            if isinstance(iconResponse, Exception):
                raise iconResponse
            return iconResponse if iconResponse is not None else makeResponse(content=ICON_BYTES)
        if isinstance(weatherResponse, Exception):
            raise weatherResponse
        return weatherResponse

    return fake


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class QueuedExecutor(Executor):
    """Holds submitted work until ``runNext`` / ``runAll`` is called."""

    def __init__(self):
        self.queue = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.queue.append((future, fn, args, kwargs))
        return future

    def runNext(self):
        future, fn, args, kwargs = self.queue.pop(0)
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)

    def runAll(self):
        while self.queue:
            self.runNext()
