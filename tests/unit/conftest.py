"""
Pytest configuration for unit tests.

Disables telemetry export and provides shared fakes for time and HTTP.
"""

import asyncio
import os

import httpx
import pytest


def pytest_configure(config):
    """Disable telemetry for unit tests."""
    # get_tracer()/get_meter() hand out no-op instruments; tests that check
    # metrics pass their own SDK meter explicitly
    os.environ["ARRSYNC_TELEMETRY_ENABLED"] = "false"


class FakeSleep:
    """Records requested delays and returns immediately."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FixedRandom:
    """random.Random stand-in returning a constant draw."""

    def __init__(self, value: float = 0.5):
        self.value = value

    def random(self) -> float:
        return self.value


class RecordingHandler:
    """
    httpx.MockTransport handler replaying scripted responses.

    Each script entry is an int status, an (int, json) tuple, an
    httpx.Response, or an exception instance to raise.
    """

    def __init__(self, *script):
        self.script = list(script)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.script:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return item
        if isinstance(item, tuple):
            status, body = item
            return httpx.Response(status, json=body)
        return httpx.Response(item)

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def fixed_rng():
    return FixedRandom(0.5)


@pytest.fixture
def script_handler():
    """Factory for RecordingHandler."""
    return RecordingHandler
