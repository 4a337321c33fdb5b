"""
Nginx reverse proxy topology.

Reads the nginx site configuration and works out which service paths are
routed to which local port. Only two constructs are understood:

    upstream api {
        server 127.0.0.1:4001;
    }

    map $http_servicepath $pool {
        /v1/*   "api";
        default "web";
    }

An upstream with no entry in the map block is the default backend and is
tagged "Main". The mapping is built once at start-up and never changes.
"""

import logging
import re
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from .config import config

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"
MAIN_ROUTE = "Main"

UPSTREAM_RE = re.compile(r"upstream\s+(\w+)\s*\{([^}]+)\}")
LOOPBACK_PORT_RE = re.compile(r"127\.0\.0\.1:(\d+)")
POOL_MAP_RE = re.compile(r"map\s+\$http_servicepath\s+\$pool\s*\{([^}]+)\}")
POOL_LINE_RE = re.compile(r'^(\S+)\s+"?(\w+)"?;')


def parse_upstreams(text: str) -> dict[str, str]:
    """
    Extract upstream name -> backend port.

    Only the first 127.0.0.1 binding of each block counts. Blocks without a
    loopback binding are skipped.
    """
    upstreams = {}
    for match in UPSTREAM_RE.finditer(text):
        name, body = match.group(1), match.group(2)
        port_match = LOOPBACK_PORT_RE.search(body)
        if port_match:
            upstreams[name] = port_match.group(1)
    return upstreams


def parse_pool_routes(text: str) -> dict[str, list[str]]:
    """Extract pool name -> service paths from the $http_servicepath map block."""
    routes: dict[str, list[str]] = {}
    match = POOL_MAP_RE.search(text)
    if not match:
        return routes

    for line in match.group(1).split("\n"):
        line = line.strip()
        if not line:
            continue
        line_match = POOL_LINE_RE.match(line)
        if line_match:
            path, pool = line_match.group(1), line_match.group(2)
            routes.setdefault(pool, []).append(path)
    return routes


class TopologyMapping:
    """Immutable port -> service paths mapping."""

    def __init__(
        self,
        routes: Mapping[str, tuple[str, ...]] = None,
        pool_routes: Mapping[str, tuple[str, ...]] = None,
    ):
        self._routes = MappingProxyType(dict(routes or {}))
        self._pool_routes = MappingProxyType(dict(pool_routes or {}))

    @property
    def ports(self) -> tuple[str, ...]:
        return tuple(self._routes)

    @property
    def pool_routes(self) -> Mapping[str, tuple[str, ...]]:
        """Pool name -> service paths, as written in the map block."""
        return self._pool_routes

    def paths_for_port(self, port) -> tuple[str, ...]:
        return self._routes.get(str(port), (NOT_AVAILABLE,))

    def main_port(self) -> str | None:
        """First port carrying the Main tag, if any."""
        for port, paths in self._routes.items():
            if MAIN_ROUTE in paths:
                return port
        return None

    def __len__(self) -> int:
        return len(self._routes)

    def __repr__(self) -> str:
        return f"TopologyMapping({dict(self._routes)!r})"


TopologyMapping.EMPTY = TopologyMapping()


def build_topology(text: str) -> TopologyMapping:
    """Combine upstream ports and pool routes into a port -> paths mapping."""
    upstreams = parse_upstreams(text)
    pool_routes = parse_pool_routes(text)

    routes = {}
    for upstream, port in upstreams.items():
        routes[port] = tuple(pool_routes.get(upstream) or (MAIN_ROUTE,))

    orphaned = set(pool_routes) - set(upstreams)
    if orphaned:
        logger.debug(f"Pools without an upstream block: {', '.join(sorted(orphaned))}")

    return TopologyMapping(
        routes,
        {pool: tuple(paths) for pool, paths in pool_routes.items()},
    )


class TopologyResolver:
    """
    Builds the topology once and hands out the same instance afterwards.

    Create one resolver at start-up and pass it (or the mapping it returns)
    to whatever needs route lookups.
    """

    def __init__(self, path: str | Path = None):
        self.path = Path(path or config.nginx_config)
        self._text: str | None = None
        self._mapping: TopologyMapping | None = None

    def resolve(self, text: str) -> TopologyMapping:
        """Parse config text, reusing the cached mapping for identical text."""
        if self._mapping is not None and text == self._text:
            return self._mapping

        self._text = text
        self._mapping = build_topology(text)
        logger.info(f"Resolved {len(self._mapping)} upstream port(s) from {self.path}")
        return self._mapping

    def load(self) -> TopologyMapping:
        """
        Read and resolve the nginx config file.

        A missing or unreadable file gives the empty topology, so every
        lookup degrades to "N/A".
        """
        if self._mapping is not None:
            return self._mapping

        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read nginx config {self.path}: {e}")
            self._text = None
            self._mapping = TopologyMapping.EMPTY
            return self._mapping

        return self.resolve(text)


def filter_pool_routes(pool_routes: Mapping[str, tuple[str, ...]], spec) -> dict[str, tuple[str, ...]]:
    """
    Narrow pool routes to a filter.

    A pool named by the filter keeps all its paths; otherwise only paths
    equal to a filter token are kept. Pools left without paths are dropped.
    """
    if spec.is_empty:
        return dict(pool_routes)

    result = {}
    for pool, paths in pool_routes.items():
        if spec.matches_name(pool):
            kept = tuple(paths)
        else:
            kept = tuple(path for path in paths if spec.matches_name(path))
        if kept:
            result[pool] = kept
    return result
