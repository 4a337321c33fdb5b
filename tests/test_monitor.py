import asyncio
import io
import subprocess

from rich.console import Console

from pm2monitor import process
from pm2monitor.errors import InventoryError
from pm2monitor.join import FilterSpec
from pm2monitor.monitor import LiveMonitor
from pm2monitor.process import Pm2Client
from pm2monitor.topology import build_topology

from conftest import SAMPLE_NGINX


def discover(pid):
    return "3000"


class FlakyProvider:
    """Succeeds, then fails, then succeeds again."""

    def __init__(self, snapshots):
        self.snapshots = snapshots
        self.calls = 0

    def list(self):
        self.calls += 1
        if self.calls == 2:
            raise InventoryError("pm2 jlist timed out")
        return self.snapshots


def test_failed_tick_keeps_previous_frame(make_snapshot, render_text):
    provider = FlakyProvider([make_snapshot(0, "web")])
    monitor = LiveMonitor(provider, build_topology(SAMPLE_NGINX), discover=discover, interval_ms=10, workers=1)

    first = render_text(monitor.refresh())
    assert "web" in first and "Main" in first

    second = render_text(monitor.refresh())
    assert "web" in second
    assert "pm2 jlist timed out" in second
    assert monitor.failures == 1

    third = render_text(monitor.refresh())
    assert "timed out" not in third
    assert monitor.ticks == 3


def test_failure_before_any_frame(fake_provider, render_text):
    monitor = LiveMonitor(fake_provider(list_error="daemon gone"), build_topology(""), discover=discover)
    assert "daemon gone" in render_text(monitor.refresh())


def test_not_found_frame(make_snapshot, fake_provider, render_text):
    monitor = LiveMonitor(
        fake_provider([make_snapshot(0, "web")]),
        build_topology(""),
        spec=FilterSpec.parse("ghost"),
        discover=discover,
    )
    assert "not found" in render_text(monitor.refresh())


def test_run_keeps_ticking_until_stopped(make_snapshot, fake_provider):
    provider = fake_provider([make_snapshot(0, "web")])
    monitor = LiveMonitor(provider, build_topology(SAMPLE_NGINX), discover=discover, interval_ms=1, workers=1)

    original_list = provider.list

    def list_then_stop():
        if provider.list_calls == 2:
            monitor.stop()
        return original_list()

    provider.list = list_then_stop
    console = Console(file=io.StringIO(), width=200)
    asyncio.run(monitor.run(console))

    assert monitor.ticks == 3
    assert provider.list_calls == 3


def test_refresh_with_undecodable_jlist_output(monkeypatch, render_text):
    raw = b'[{"pm_id": 0, "name": "caf\xe9", "pm2_env": {"status": "online"}}]'

    def run(cmd, **kwargs):
        stdout = raw.decode("utf-8", kwargs.get("errors", "strict"))
        return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr="")

    monkeypatch.setattr(process.subprocess, "run", run)
    monitor = LiveMonitor(Pm2Client(pm2_bin="pm2"), build_topology(""), discover=discover)

    assert "caf" in render_text(monitor.refresh())
    assert monitor.failures == 0
