"""Shared test fixtures.

Two ways of standing in for the payroll backend:
  backend / api        — the sandbox FastAPI app behind a TestClient, for
                         end-to-end flows that need realistic progression.
  scripted / scripted_api — an httpx.MockTransport that replays canned
                         replies per endpoint, for exact scenario control
                         (transport errors, odd bodies, stale responses).

Coordinator tests use ``ManualPoller`` so no background thread runs and
ticks happen only when a test calls ``fire()``.
"""
from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from paytrack.api.client import PayrollClient, static_token
from paytrack.progress.coordinator import PayrollJobProgressCoordinator
from paytrack.sandbox.app import create_app
from paytrack.sandbox.store import SandboxPayrollStore

TOKEN = "test-token"


class ManualPoller:
    """Drop-in for ``StatusPoller`` that never starts a thread."""

    def __init__(self, tick: Callable[[], None], interval: float, name: str) -> None:
        self.tick = tick
        self.interval = interval
        self.name = name
        self.running = False
        self.starts = 0
        self.stops = 0

    def start(self) -> None:
        if not self.running:
            self.starts += 1
            self.running = True

    def stop(self, wait: bool = False) -> None:
        if self.running:
            self.stops += 1
            self.running = False

    def fire(self) -> None:
        if self.running:
            self.tick()


class ScriptedBackend:
    """MockTransport handler replaying canned replies keyed by endpoint name.

    The endpoint name is the path segment after ``/payroll/`` (e.g.
    ``run-status``). Replies are consumed in order and the last one repeats.
    A reply may be a JSON-able dict (200), an ``httpx.Response``, an
    exception instance (raised), or a callable taking the request.
    """

    def __init__(self) -> None:
        self._script: dict[str, list] = {}
        self.requests: list[httpx.Request] = []

    def on(self, endpoint: str, *replies) -> ScriptedBackend:
        self._script.setdefault(endpoint, []).extend(replies)
        return self

    def calls(self, endpoint: str) -> int:
        return sum(1 for r in self.requests if _endpoint(r) == endpoint)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        replies = self._script.get(_endpoint(request))
        if not replies:
            return httpx.Response(404, json={"error": f"no script for {request.url.path}"})
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if callable(reply) and not isinstance(reply, httpx.Response):
            reply = reply(request)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)


def _endpoint(request: httpx.Request) -> str:
    parts = request.url.path.strip("/").split("/")
    return parts[1] if len(parts) > 1 and parts[0] == "payroll" else parts[0]


def status_body(status: str, **details) -> dict:
    """Build a run-status JSON body; ``details`` become ``progressDetails``."""
    body: dict = {"id": "R1", "status": status, "payrollMonth": "January 2026"}
    if details:
        body["progressDetails"] = details
    return body


@pytest.fixture
def store():
    return SandboxPayrollStore(default_employees=20, default_batch=5)


@pytest.fixture
def backend(store):
    """Sandbox FastAPI app behind a TestClient."""
    with TestClient(create_app(store)) as c:
        yield c


@pytest.fixture
def api(backend):
    return PayrollClient(token_provider=static_token(TOKEN), http=backend)


@pytest.fixture
def scripted():
    return ScriptedBackend()


@pytest.fixture
def scripted_api(scripted):
    http = httpx.Client(base_url="http://payroll.test", transport=httpx.MockTransport(scripted))
    client = PayrollClient(token_provider=static_token(TOKEN), http=http)
    yield client
    client.close()


@pytest.fixture
def pollers():
    return []


@pytest.fixture
def poller_factory(pollers):
    def _factory(tick, interval, name):
        poller = ManualPoller(tick, interval, name)
        pollers.append(poller)
        return poller

    return _factory


@pytest.fixture
def notices():
    return []


@pytest.fixture
def downloads():
    return []


@pytest.fixture
def coordinator(scripted_api, poller_factory, notices, downloads):
    c = PayrollJobProgressCoordinator(
        scripted_api,
        poll_interval=2.5,
        on_notice=notices.append,
        download_sink=downloads.append,
        poller_factory=poller_factory,
    )
    yield c
    c.finish()
