"""In-process stand-ins for the HTTP transport used by the executor tests."""
import threading
import time
from datetime import timedelta


class FakeResponse:
    def __init__(self, status_code=200, text="", headers=None, latency_ms=10.0):
        self.status_code = status_code
        self.text = text
        self.headers = {"Content-Type": "application/json"} if headers is None else headers
        self.elapsed = timedelta(milliseconds=latency_ms)


class FakeSession:
    """Records every call and tracks how many are in flight at once.

    ``handler(method, url, kwargs)`` returns a FakeResponse or raises; the
    default answers 200 with an empty JSON object.
    """

    def __init__(self, handler=None, delay=0.0):
        self.handler = handler or (lambda method, url, kwargs: FakeResponse(text="{}"))
        self.delay = delay
        self.calls = []
        self.events = []
        self.in_flight = 0
        self.peak = 0
        self._lock = threading.Lock()

    def request(self, method, url, **kwargs):
        with self._lock:
            idx = len(self.calls)
            self.calls.append((method, url, kwargs))
            self.events.append(("start", url, idx))
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            return self.handler(method, url, kwargs)
        finally:
            with self._lock:
                self.in_flight -= 1
                self.events.append(("end", url, idx))

    def urls(self):
        with self._lock:
            return [u for _, u, _ in self.calls]
