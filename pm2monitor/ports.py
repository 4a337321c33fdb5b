"""
Listening port discovery for running processes.

Asks the OS which TCP ports a PID is listening on. Uses lsof by default,
or psutil when PORT_BACKEND=psutil. Lookups are never cached: a process
can rebind between refreshes.
"""

import logging
import re
import subprocess

import psutil

from .config import config
from .topology import NOT_AVAILABLE

logger = logging.getLogger(__name__)

PORT_RE = re.compile(r":(\d+)\s")


def parse_listening_ports(output: str) -> list[str]:
    """Extract the port from each listening-socket line of lsof output."""
    ports = []
    for line in output.splitlines():
        match = PORT_RE.search(line)
        if match:
            ports.append(match.group(1))
    return ports


def join_ports(ports: list) -> str:
    """Join ports for display, dropping duplicates (IPv4 and IPv6 sockets)."""
    unique = list(dict.fromkeys(str(port) for port in ports))
    return ", ".join(unique) or NOT_AVAILABLE


def first_port(ports: str) -> str:
    """The port used for route lookup when a process listens on several."""
    return ports.split(",")[0].strip() or NOT_AVAILABLE


class PortDiscovery:
    """Finds the listening ports of a PID."""

    def __init__(self, backend: str = None, timeout: int = None):
        self.backend = backend or config.port_backend
        self.timeout = timeout or config.port_timeout
        if self.backend not in ("lsof", "psutil"):
            raise ValueError(f"Unknown port backend: {self.backend}")

    def ports_for_pid(self, pid: int | None) -> str:
        """Comma-joined listening ports of pid, or "N/A"."""
        if not pid:
            return NOT_AVAILABLE

        if self.backend == "psutil":
            ports = self._psutil_ports(pid)
        else:
            ports = self._lsof_ports(pid)
        return join_ports(ports)

    __call__ = ports_for_pid

    def _lsof_ports(self, pid: int) -> list[str]:
        try:
            result = subprocess.run(
                ["lsof", "-nP", "-a", "-p", str(pid), "-iTCP", "-sTCP:LISTEN"],
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"lsof timed out for PID {pid}")
            return []
        except OSError as e:
            logger.error(f"Could not run lsof: {e}")
            return []

        # lsof exits 1 when nothing matched, e.g. the process just exited
        if result.returncode != 0:
            return []

        lines = [line for line in result.stdout.splitlines() if "LISTEN" in line and _pid_column(line) == str(pid)]
        return parse_listening_ports("\n".join(lines) + "\n")

    def _psutil_ports(self, pid: int) -> list[str]:
        try:
            connections = psutil.Process(pid).net_connections(kind="inet")
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            logger.debug(f"Cannot inspect sockets of PID {pid}: {e}")
            return []

        return [
            str(conn.laddr.port)
            for conn in connections
            if conn.status == psutil.CONN_LISTEN and conn.laddr
        ]


def _pid_column(line: str) -> str | None:
    parts = line.split()
    return parts[1] if len(parts) > 1 else None
