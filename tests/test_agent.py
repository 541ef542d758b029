import json
from types import SimpleNamespace

import pytest

from saigon_agent import agent
from saigon_server.models import METRIC_FIELDS, SnapshotIn


class FakeConnection:
    def __init__(self, sent):
        self.sent = sent

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def send(self, message):
        self.sent.append(message)


@pytest.fixture
def no_sleep(monkeypatch):
    sleeps = []
    monkeypatch.setattr(agent, "CPU_SAMPLE_SECONDS", 0)
    monkeypatch.setattr(agent.time, "sleep", sleeps.append)
    return sleeps


def test_collect_snapshot_reports_every_metric_as_string():
    snapshot = agent.collect_snapshot()

    assert set(snapshot) == set(METRIC_FIELDS)
    assert all(isinstance(value, str) and value for value in snapshot.values())


def test_build_message_is_accepted_by_server_model():
    snapshot = agent.collect_snapshot()

    message = SnapshotIn.model_validate_json(agent.build_message(snapshot, "secret"))

    assert message.auth_token == "secret"
    assert message.hostname == snapshot["hostname"]


def test_format_uptime_with_days():
    assert agent.format_uptime(273906) == "3 days, 4:05:06"


def test_format_uptime_under_a_day():
    assert agent.format_uptime(3725) == "1:02:05"


def test_uptime_from_boot_time(monkeypatch):
    monkeypatch.setattr(agent.psutil, "boot_time", lambda: 1_000_000.0)
    monkeypatch.setattr(agent.time, "time", lambda: 1_003_725.4)
    assert agent.uptime() == "1:02:05"


def test_cpu_percentage_is_measured_utilisation(monkeypatch):
    calls = []

    def fake_cpu_percent(interval=None):
        calls.append(interval)
        return 37.4

    monkeypatch.setattr(agent.psutil, "cpu_percent", fake_cpu_percent)
    monkeypatch.setattr(agent.os, "getloadavg", lambda: (8.0, 8.0, 8.0), raising=False)

    assert agent.cpu_percentage() == "37.4%"
    assert calls == [agent.CPU_SAMPLE_SECONDS]


def test_memory_from_virtual_memory(monkeypatch):
    gib = 1024 ** 3
    vm = SimpleNamespace(total=4 * gib, available=3 * gib, percent=25.0)
    monkeypatch.setattr(agent.psutil, "virtual_memory", lambda: vm)

    mem_stats, ram_percentage = agent.memory()

    assert mem_stats == "1.00 GiB / 4.00 GiB"
    assert ram_percentage == "25.0%"


def test_disk_space_from_psutil(monkeypatch):
    gib = 1024 ** 3
    usage = SimpleNamespace(total=100 * gib, free=60 * gib, used=40 * gib)
    monkeypatch.setattr(agent.psutil, "disk_usage", lambda path: usage)

    assert agent.disk_space("/") == ("100.00 GiB", "60.00 GiB", "40.00 GiB")


def test_disk_space_unreadable_path():
    assert agent.disk_space("/definitely/not/a/real/path") == (agent.UNKNOWN,) * 3


def test_send_snapshots_pushes_one_message_per_interval(monkeypatch, no_sleep):
    sent = []
    monkeypatch.setattr(agent, "connect", lambda url: FakeConnection(sent))

    count = agent.send_snapshots("ws://example/", "secret", interval=30, max_messages=3)

    assert count == 3
    assert len(sent) == 3
    assert all(json.loads(m)["auth_token"] == "secret" for m in sent)
    assert no_sleep == [30, 30]


def test_send_snapshots_reconnects_after_failure(monkeypatch, no_sleep):
    sent = []
    attempts = []

    def flaky_connect(url):
        attempts.append(url)
        if len(attempts) == 1:
            raise ConnectionRefusedError("server down")
        return FakeConnection(sent)

    monkeypatch.setattr(agent, "connect", flaky_connect)
    monkeypatch.setattr(agent, "RECONNECT_DELAY_SECONDS", 7)

    agent.send_snapshots("ws://example/", "secret", interval=1, max_messages=1)

    assert len(attempts) == 2
    assert len(sent) == 1
    assert no_sleep == [7]
