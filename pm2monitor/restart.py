"""
Bulk restart of PM2 processes.

Selects the online processes matching a filter and restarts them all
concurrently, optionally flipping each process's watch mode. A failed
restart is logged and counted; it never stops the others.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional

from .join import FilterSpec, filter_snapshots
from .models import ProcessSnapshot

logger = logging.getLogger(__name__)


class RestartStatus(Enum):
    RESTARTED = "restarted"
    FAILED = "failed"


@dataclass
class RestartOutcome:
    """Result of restarting one process."""

    pm_id: int
    name: str
    status: RestartStatus
    watch: Optional[bool] = None  # new watch mode, None when left unchanged
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == RestartStatus.RESTARTED

    def to_dict(self) -> dict:
        return {
            "pm_id": self.pm_id,
            "name": self.name,
            "status": self.status.value,
            "watch": self.watch,
            "error": self.error,
        }


@dataclass
class RestartSummary:
    """Aggregated result of a restart batch."""

    matched: int = 0
    selected: int = 0
    outcomes: list[RestartOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def nothing_to_do(self) -> bool:
        return self.selected == 0


def select_online(snapshots: Iterable[ProcessSnapshot], spec: FilterSpec) -> list[ProcessSnapshot]:
    """Processes matching the filter that are currently online."""
    return [p for p in filter_snapshots(snapshots, spec) if p.is_online]


async def restart_processes(
    provider,
    spec: FilterSpec,
    toggle_watch: bool = False,
    on_outcome: Callable[[RestartOutcome], None] = None,
) -> RestartSummary:
    """
    Restart every online process matching spec.

    Restarts run concurrently; the batch finishes once each one has
    succeeded or failed. on_outcome is called as each restart completes.
    Raises InventoryError if the process list cannot be fetched.
    """
    snapshots = await asyncio.to_thread(provider.list)
    matched = filter_snapshots(snapshots, spec)
    selected = select_online(matched, spec)
    summary = RestartSummary(matched=len(matched), selected=len(selected))

    if not selected:
        logger.info(f"No online processes match {spec}")
        return summary

    async def restart_one(p: ProcessSnapshot) -> RestartOutcome:
        watch = (not p.watch) if toggle_watch else None
        try:
            await asyncio.to_thread(provider.restart, p.pm_id, watch)
            outcome = RestartOutcome(p.pm_id, p.name, RestartStatus.RESTARTED, watch=watch)
            logger.info(f"Restarted {p.name} (#{p.pm_id})")
        except Exception as e:
            outcome = RestartOutcome(p.pm_id, p.name, RestartStatus.FAILED, watch=watch, error=str(e))
            logger.error(f"Restart failed for {p.name} (#{p.pm_id}): {e}")

        if on_outcome:
            on_outcome(outcome)
        return outcome

    summary.outcomes = list(await asyncio.gather(*(restart_one(p) for p in selected)))
    logger.info(
        f"Restart batch done: {summary.succeeded} restarted, {summary.failed} failed "
        f"of {summary.selected} online"
    )
    return summary
