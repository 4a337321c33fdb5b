"""
Process snapshot model.

A ProcessSnapshot is the point-in-time state of one PM2 process, built from
one entry of `pm2 jlist`. Snapshots are fetched fresh every refresh and are
never modified.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

ONLINE = "online"


class ProcessSnapshot(BaseModel):
    """State of a supervised process as reported by PM2."""

    model_config = ConfigDict(frozen=True)

    pm_id: int
    name: str
    namespace: str = "default"
    version: str = "N/A"
    exec_mode: str = "fork_mode"
    pid: Optional[int] = None
    status: str = "stopped"
    restart_time: int = 0
    cpu: float = 0.0  # percent
    memory: int = 0  # bytes
    username: str = "N/A"
    watch: bool = False
    pm_uptime: Optional[int] = None  # epoch milliseconds
    cwd: Optional[str] = None
    out_log_path: Optional[str] = None
    err_log_path: Optional[str] = None

    # Only shown in the detail view
    interpreter: str = "node"
    exec_path: Optional[str] = None
    instances: int = 1
    max_memory_restart: Optional[int] = Field(None, description="Bytes")
    pm2_home: Optional[str] = None

    @property
    def is_online(self) -> bool:
        return self.status == ONLINE

    @classmethod
    def from_pm2(cls, entry: dict) -> "ProcessSnapshot":
        """Build a snapshot from one `pm2 jlist` entry."""
        env = entry.get("pm2_env") or {}
        monit = entry.get("monit") or {}

        return cls(
            pm_id=entry.get("pm_id", env.get("pm_id", -1)),
            name=entry.get("name") or env.get("name") or "?",
            namespace=env.get("namespace") or "default",
            version=str(env.get("version") or "N/A"),
            exec_mode=env.get("exec_mode") or "fork_mode",
            pid=entry.get("pid") or None,
            status=env.get("status") or "stopped",
            restart_time=env.get("restart_time") or 0,
            cpu=monit.get("cpu") or 0.0,
            memory=monit.get("memory") or 0,
            username=env.get("username") or "N/A",
            watch=bool(env.get("watch")),
            pm_uptime=_int_or(env.get("pm_uptime"), None) or None,
            cwd=env.get("pm_cwd"),
            out_log_path=env.get("pm_out_log_path"),
            err_log_path=env.get("pm_err_log_path"),
            interpreter=env.get("exec_interpreter") or "node",
            exec_path=env.get("pm_exec_path"),
            instances=_int_or(env.get("instances"), 1),
            max_memory_restart=_int_or(env.get("max_memory_restart"), None),
            pm2_home=env.get("PM2_HOME"),
        )


def _int_or(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
