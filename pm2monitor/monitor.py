"""
Live PM2 monitor.

Refreshes a table of PM2 processes at a fixed interval. Each tick runs the
blocking PM2 and socket lookups in a worker thread, joins the results with
the nginx topology and redraws the frame in place. A failed tick keeps the
previous frame on screen with an error line below it.
"""

import asyncio
import logging
import time

from rich.console import Console, Group, RenderableType
from rich.live import Live

from .config import config
from .errors import InventoryError
from .join import FilterSpec, TickResult, TickState, run_tick
from .ports import PortDiscovery
from .render import render_error_footer, render_frame
from .topology import TopologyMapping

logger = logging.getLogger(__name__)


class LiveMonitor:
    """Fixed-interval fetch, join and render loop."""

    def __init__(
        self,
        provider,
        topology: TopologyMapping,
        spec: FilterSpec = None,
        discover=None,
        interval_ms: int = None,
        workers: int = None,
    ):
        self.provider = provider
        self.topology = topology
        self.spec = spec or FilterSpec()
        self.discover = discover or PortDiscovery()
        self.interval = (interval_ms or config.tick_interval_ms) / 1000
        self.workers = workers or config.discovery_workers
        self._running = False
        self._last_frame: RenderableType | None = None
        self.ticks = 0
        self.failures = 0

    def tick(self) -> TickResult:
        """Fetch, filter and join once."""
        return run_tick(self.provider, self.topology, self.spec, self.discover, self.workers)

    def refresh(self) -> RenderableType:
        """Run one tick and return the frame to display."""
        self.ticks += 1
        try:
            result = self.tick()
        except (InventoryError, OSError) as e:
            self.failures += 1
            logger.error(f"Error fetching process list: {e}")
            if self._last_frame is None:
                error = TickResult(TickState.ERROR, filter=self.spec, error=str(e))
                return render_frame(error, time.time() * 1000)
            return Group(self._last_frame, render_error_footer(str(e)))

        self._last_frame = render_frame(result, time.time() * 1000)
        return self._last_frame

    async def run(self, console: Console = None):
        """Redraw until stopped or the process is terminated."""
        self._running = True
        logger.info(f"Live monitor started (filter: {self.spec}, interval: {self.interval}s)")

        with Live(console=console, auto_refresh=False, transient=False) as live:
            while self._running:
                started = time.monotonic()
                frame = await asyncio.to_thread(self.refresh)
                live.update(frame, refresh=True)

                elapsed = time.monotonic() - started
                await asyncio.sleep(max(self.interval - elapsed, 0))

        logger.info("Live monitor stopped")

    def stop(self):
        self._running = False
