"""
PM2 process inventory.

Wraps the PM2 command line behind a small contract: connect, list the
managed processes, restart one of them. Every call shells out to `pm2`
and turns failures into InventoryError.
"""

import json
import logging
import subprocess
from typing import Protocol

from pydantic import ValidationError

from .config import config
from .errors import InventoryError, RestartError
from .models import ProcessSnapshot

logger = logging.getLogger(__name__)


class InventoryProvider(Protocol):
    """What the monitor and restart tool need from a process manager."""

    def connect(self) -> None: ...

    def list(self) -> list[ProcessSnapshot]: ...

    def restart(self, pm_id: int, watch: bool | None = None) -> None: ...


class Pm2Client:
    """Talks to the PM2 daemon through the pm2 CLI."""

    def __init__(self, pm2_bin: str = None, timeout: int = None):
        self.pm2_bin = pm2_bin or config.pm2_bin
        self.timeout = timeout or config.pm2_timeout

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        cmd = [self.pm2_bin, *args]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except FileNotFoundError:
            raise InventoryError(f"PM2 executable not found: {self.pm2_bin}")
        except subprocess.TimeoutExpired:
            raise InventoryError(f"`{' '.join(cmd)}` timed out after {self.timeout}s")
        except OSError as e:
            raise InventoryError(f"Could not run `{' '.join(cmd)}`: {e}")

        if result.returncode != 0:
            stderr = (result.stderr or result.stdout).strip()
            raise InventoryError(f"`{' '.join(cmd)}` exited with {result.returncode}: {stderr}")
        return result

    def connect(self) -> None:
        """Make sure the PM2 daemon is up and answering."""
        self._run("ping")
        logger.info("Connected to PM2")

    def list(self) -> list[ProcessSnapshot]:
        """Current state of every process PM2 manages, in PM2's order."""
        result = self._run("jlist")
        return parse_jlist(result.stdout)

    def restart(self, pm_id: int, watch: bool | None = None) -> None:
        """
        Restart one process.

        watch=True turns file watching on as part of the restart, watch=False
        turns it off, None leaves it alone.
        """
        args = ["restart", str(pm_id)]
        if watch is True:
            args.append("--watch")
        elif watch is False:
            args.append("--no-watch")

        try:
            self._run(*args)
        except InventoryError as e:
            raise RestartError(pm_id, str(pm_id), str(e)) from e
        logger.info(f"Restarted PM2 process #{pm_id}")


def parse_jlist(output: str) -> list[ProcessSnapshot]:
    """Parse `pm2 jlist` output into snapshots."""
    # pm2 may print update notices before the JSON payload
    start = output.find("[")
    if start < 0:
        raise InventoryError("pm2 jlist returned no process list")

    try:
        entries = json.loads(output[start:])
    except json.JSONDecodeError as e:
        raise InventoryError(f"Invalid pm2 jlist output: {e}")

    if not isinstance(entries, list):
        raise InventoryError("pm2 jlist did not return a list")

    try:
        return [ProcessSnapshot.from_pm2(entry) for entry in entries]
    except (ValidationError, AttributeError) as e:
        raise InventoryError(f"Unexpected pm2 jlist entry: {e}")
