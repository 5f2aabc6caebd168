import functools
import json
import os
import types

# Must be set before main.py is imported: no Cloud Logging credentials in tests.
os.environ["CLOUD_LOGGING"] = "false"

import pytest
from flask import Flask
from googleapiclient.errors import HttpError

from game_server.poller import OperationPoller


def http_error(status, code=None, message="boom", errors=None):
    error = {"code": status, "message": message}
    if code:
        error["status"] = code
    if errors:
        error["errors"] = errors
    resp = types.SimpleNamespace(status=status, reason=message)
    return HttpError(resp, json.dumps({"error": error}).encode("utf-8"))


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock(mocker):
    fake = FakeClock()
    mocker.patch(
        "game_server.handlers.OperationPoller",
        functools.partial(OperationPoller, sleep=fake.sleep, clock=fake),
    )
    return fake


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "test-project")
    monkeypatch.setenv("MINECRAFT_ZONE", "us-west1-b")
    monkeypatch.setenv("MINECRAFT_INSTANCE", "mc-1")
    monkeypatch.setenv("MINECRAFT_FIREWALL_RULE", "mc-allow")
    monkeypatch.delenv("GCP_PROJECT", raising=False)
    monkeypatch.delenv("ALLOWED_ORIGIN", raising=False)
    return monkeypatch


@pytest.fixture
def compute(mocker, env):
    mock_get = mocker.patch("game_server.clients.get_compute")
    return mock_get.return_value


@pytest.fixture
def app():
    return Flask("game-server-tests")
