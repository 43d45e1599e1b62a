"""pytest configuration and shared fakes for Wakegate tests."""

import json

import bcrypt
import pytest
import yaml

from waker.orchestrator import WakeOrchestrator
from waker.sender import SendError

PASSWORD = "open-sesame"


class FakeProber:
    """Answers probes from a script: results[i] for the i-th call, then `default`."""

    def __init__(self, results=(), default=False):
        self.results = list(results)
        self.default = default
        self.calls = []

    async def probe(self, address, timeout):
        self.calls.append((address, timeout))
        index = len(self.calls) - 1
        return self.results[index] if index < len(self.results) else self.default


class FakeSender:
    def __init__(self, error=None):
        self.error = error
        self.sent = []

    async def send(self, mac):
        self.sent.append(mac)
        if self.error:
            raise SendError(self.error)


class FakeSleep:
    """Records requested waits without actually waiting."""

    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)

    @property
    def total(self):
        return sum(self.waits)


def make_orchestrator(prober, sender, sleep=None, **kwargs):
    return WakeOrchestrator(prober, sender, sleep=sleep or FakeSleep(), **kwargs)


async def collect(orchestrator, device):
    return [event async for event in orchestrator.run(device)]


@pytest.fixture(scope="session")
def password_hash():
    # Low cost factor keeps the suite fast.
    return bcrypt.hashpw(PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


@pytest.fixture()
def project_dir(tmp_path, password_hash):
    """A project directory with config.yaml and devices.json."""
    config = {
        "web": {"tls": False, "static_dir": "public"},
        "auth": {"hashed_password": password_hash},
        "devices": {"file": "devices.json"},
    }
    (tmp_path / "config.yaml").write_text(yaml.safe_dump(config), encoding="utf-8")
    (tmp_path / "devices.json").write_text(json.dumps([
        {"name": "NAS", "mac": "AA:BB:CC:DD:EE:01", "ip": "192.168.1.20"},
    ]), encoding="utf-8")
    return tmp_path
