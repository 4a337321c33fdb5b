"""
Live join of PM2 state, listening ports and nginx routes.

Each refresh tick fetches the process list, narrows it to the active
filter, looks up the listening port of every online process and resolves
the service paths routed to that port.
"""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional

from .models import ProcessSnapshot
from .ports import first_port
from .topology import NOT_AVAILABLE, TopologyMapping

logger = logging.getLogger(__name__)

MATCH_ALL = "all"


@dataclass(frozen=True)
class FilterSpec:
    """Process/service filter given on the command line."""

    tokens: frozenset[str] = frozenset()
    raw: Optional[str] = None

    @classmethod
    def parse(cls, arg: Optional[str]) -> "FilterSpec":
        """
        Parse a filter argument.

        Accepts "all", a JSON array ('["api", 3]'), a single JSON value or a
        comma separated list. "all" and empty input match everything.
        """
        if arg is None or not arg.strip() or arg.strip().lower() == MATCH_ALL:
            return cls(raw=arg)

        try:
            parsed = json.loads(arg)
        except json.JSONDecodeError:
            values = arg.split(",")
        else:
            values = parsed if isinstance(parsed, list) else [parsed]

        tokens = frozenset(str(v).strip().lower() for v in values if str(v).strip())
        if MATCH_ALL in tokens:
            tokens = frozenset()
        return cls(tokens=tokens, raw=arg)

    @property
    def is_empty(self) -> bool:
        return not self.tokens

    def matches(self, snapshot: ProcessSnapshot) -> bool:
        """Match on numeric id, or on the name case-insensitively (substring)."""
        if self.is_empty:
            return True
        if str(snapshot.pm_id) in self.tokens:
            return True
        name = snapshot.name.lower()
        return any(token in name for token in self.tokens)

    def matches_name(self, name: str) -> bool:
        """Exact, case-insensitive match (pool names and service paths)."""
        return self.is_empty or name.lower() in self.tokens

    def __str__(self) -> str:
        return self.raw or MATCH_ALL


def filter_snapshots(snapshots: Iterable[ProcessSnapshot], spec: FilterSpec) -> list[ProcessSnapshot]:
    return [s for s in snapshots if spec.matches(s)]


@dataclass(frozen=True)
class ViewRecord:
    """One table row: a snapshot joined with its port and routes."""

    snapshot: ProcessSnapshot
    port: str = NOT_AVAILABLE
    paths: tuple[str, ...] = (NOT_AVAILABLE,)
    is_main_route: bool = False

    @property
    def path_text(self) -> str:
        return ",".join(self.paths)


def join(
    snapshots: Iterable[ProcessSnapshot],
    topology: TopologyMapping,
    discover: Callable[[int], str],
    workers: int = 1,
) -> list[ViewRecord]:
    """
    Join snapshots with port discovery and topology, keeping input order.

    Processes that are not online get no port lookup at all. When a process
    listens on several ports all of them are shown, but only the first one
    is used to find its routes.
    """
    snapshots = list(snapshots)
    online = [s for s in snapshots if s.is_online]

    if workers > 1 and len(online) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            found = list(pool.map(lambda s: discover(s.pid), online))
    else:
        found = [discover(s.pid) for s in online]
    ports = iter(found)

    main_port = topology.main_port()
    records = []
    for snapshot in snapshots:
        if not snapshot.is_online:
            records.append(ViewRecord(snapshot))
            continue

        port = next(ports)
        lookup_port = first_port(port)
        records.append(
            ViewRecord(
                snapshot=snapshot,
                port=port,
                paths=topology.paths_for_port(lookup_port),
                is_main_route=main_port is not None and lookup_port == main_port,
            )
        )
    return records


class TickState(Enum):
    OK = "ok"
    EMPTY = "empty"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass
class TickResult:
    """Outcome of one fetch-discover-join cycle."""

    state: TickState
    records: list[ViewRecord] = field(default_factory=list)
    filter: FilterSpec = field(default_factory=FilterSpec)
    error: Optional[str] = None
    taken_at: float = field(default_factory=time.time)

    @property
    def detail(self) -> bool:
        """Show the detail view: a filter narrowed the fleet to one process."""
        return self.state == TickState.OK and not self.filter.is_empty and len(self.records) == 1


def run_tick(
    provider,
    topology: TopologyMapping,
    spec: FilterSpec,
    discover: Callable[[int], str],
    workers: int = 1,
) -> TickResult:
    """
    Fetch, filter and join once.

    Raises InventoryError when the process list cannot be fetched; the
    caller decides what to show instead.
    """
    snapshots = provider.list()
    if not snapshots:
        return TickResult(TickState.EMPTY, filter=spec)

    selected = filter_snapshots(snapshots, spec)
    if not selected:
        return TickResult(TickState.NOT_FOUND, filter=spec)

    records = join(selected, topology, discover, workers=workers)
    return TickResult(TickState.OK, records=records, filter=spec)
