import io

import pytest
from rich.console import Console

from pm2monitor.errors import InventoryError, RestartError
from pm2monitor.models import ProcessSnapshot

SAMPLE_NGINX = """
upstream web {
    server 127.0.0.1:3000;
}

upstream api {
    server 127.0.0.1:4001;
    server 127.0.0.1:4002 backup;
}

upstream billing {
    server 127.0.0.1:5000;
}

map $http_servicepath $pool {
    /v1/*      "api";
    /v2/*      api;
    /billing/* "billing";
    /legacy/*  "archive";
}
"""


class FakeProvider:
    """In-memory stand-in for the PM2 client."""

    def __init__(self, snapshots=None, fail_ids=(), list_error=None):
        self.snapshots = list(snapshots or [])
        self.fail_ids = set(fail_ids)
        self.list_error = list_error
        self.list_calls = 0
        self.restarts = []

    def connect(self):
        pass

    def list(self):
        self.list_calls += 1
        if self.list_error:
            raise InventoryError(self.list_error)
        return list(self.snapshots)

    def restart(self, pm_id, watch=None):
        self.restarts.append((pm_id, watch))
        if pm_id in self.fail_ids:
            raise RestartError(pm_id, str(pm_id), "process not found")


@pytest.fixture
def make_snapshot():
    def factory(pm_id, name=None, status="online", pid=None, **kwargs):
        if pid is None and status == "online":
            pid = 1000 + pm_id
        return ProcessSnapshot(
            pm_id=pm_id,
            name=name or f"svc-{pm_id}",
            status=status,
            pid=pid,
            **kwargs,
        )

    return factory


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def render_text():
    def render(renderable, width=250):
        console = Console(file=io.StringIO(), width=width, color_system=None)
        console.print(renderable)
        return console.file.getvalue()

    return render
