"""
Offline test doubles: a deterministic clock and a scripted requests session
"""

import json

import requests
from requests.structures import CaseInsensitiveDict

from cloudapi.coreutils.env import ClientConfig
from cloudapi.coreutils.retry import RetryPolicy

START_TIME = 1_700_000_000.0


def make_config(**overrides) -> ClientConfig:
    settings = {
        "token": "test-token",
        "org_id": "org-1",
        "base_url": "https://api.example.test/v1",
        "timeout": 10.0,
        "inter_chunk_delay": 0.5,
    }
    settings.update(overrides)
    return ClientConfig(**settings)


def no_jitter_policy(**overrides) -> RetryPolicy:
    settings = {"jitter": 0.0}
    settings.update(overrides)
    return RetryPolicy(**settings)


def make_response(status=200, body=None, headers=None, raw=None, reason="") -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.reason = reason
    response.encoding = "utf-8"
    response.headers = CaseInsensitiveDict(headers or {})
    if raw is not None:
        response._content = raw.encode("utf-8")
    elif body is not None:
        response._content = json.dumps(body).encode("utf-8")
    else:
        response._content = b""
    return response


class FakeClock:
    """Clock whose sleeps advance time instantly and are recorded"""

    def __init__(self, start=START_TIME):
        self.current = start
        self.sleeps = []
        self.on_sleep = None

    def now(self):
        return self.current

    def sleep(self, seconds, cancel_event=None):
        self.sleeps.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(seconds)
        if cancel_event is not None and cancel_event.is_set():
            return True
        self.current += max(0.0, seconds)
        return False


class FakeSession:
    """
    Stands in for requests.Session

    Each queued entry is a Response, an exception to raise, or a callable
    taking the recorded call and returning either.
    """

    def __init__(self, *responses):
        self.queue = list(responses)
        self.calls = []
        self.headers = {}
        self.closed = False

    def queue_response(self, *responses):
        self.queue.extend(responses)

    def request(self, method, url, params=None, data=None, headers=None, timeout=None):
        call = {
            "method": method,
            "url": url,
            "params": params,
            "data": data,
            "headers": dict(headers or {}),
            "timeout": timeout,
        }
        self.calls.append(call)
        if not self.queue:
            raise AssertionError(f"Unexpected request #{len(self.calls)}: {method} {url}")
        entry = self.queue.pop(0)
        if callable(entry) and not isinstance(entry, requests.Response):
            entry = entry(call)
        if isinstance(entry, BaseException):
            raise entry
        return entry

    def close(self):
        self.closed = True

    def json_body(self, index):
        return json.loads(self.calls[index]["data"])
