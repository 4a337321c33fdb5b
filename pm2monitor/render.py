"""
Terminal rendering.

Pure functions that turn view records into rich renderables. Nothing in
here does I/O; the current time is passed in by the caller.
"""

from typing import Mapping

from rich import box
from rich.console import Group, RenderableType
from rich.table import Table
from rich.text import Text

from .join import TickResult, TickState, ViewRecord
from .models import ProcessSnapshot
from .topology import NOT_AVAILABLE

TABLE_COLUMNS = [
    "ID",
    "Micro Name",
    "Namespace",
    "Version",
    "Mode",
    "PID",
    "Port",
    "Service Path",
    "Uptime",
    "Restarts",
    "Status",
    "CPU",
    "Memory",
    "User",
    "Watching",
]

MAIN_ROUTE_STYLE = "bold bright_magenta"


def format_uptime(ms: float) -> str:
    """Format a duration in the coarsest unit that stays below 60 (24 for hours)."""
    sec = max(int(ms // 1000), 0)
    if sec < 60:
        return f"{sec}s"
    minutes = sec // 60
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h"
    return f"{hours // 24}d"


def format_memory(num_bytes: int) -> str:
    return f"{num_bytes / 1024 / 1024:.1f}mb"


def format_cpu(percent: float) -> str:
    return f"{percent:g}%"


def uptime_text(snapshot: ProcessSnapshot, now_ms: float) -> str:
    if snapshot.is_online and snapshot.pm_uptime:
        return format_uptime(now_ms - snapshot.pm_uptime)
    return "0"


def status_text(status: str) -> Text:
    return Text(status, style="bold green" if status == "online" else "bold red")


def watch_text(watch: bool) -> Text:
    return Text("enabled", style="green") if watch else Text("disabled", style="grey50")


def path_text(record: ViewRecord) -> Text:
    if not record.snapshot.is_online:
        return Text(NOT_AVAILABLE)
    return Text(record.path_text, style=MAIN_ROUTE_STYLE if record.is_main_route else "")


def render_table(records: list[ViewRecord], now_ms: float) -> Table:
    """One row per process, in the order given."""
    table = Table(header_style="green", border_style="grey50", box=box.SQUARE)
    for column in TABLE_COLUMNS:
        table.add_column(column, header_style="bold green" if column == "Micro Name" else None)

    for record in records:
        p = record.snapshot
        online = p.is_online
        table.add_row(
            str(p.pm_id),
            Text(p.name, style="yellow"),
            p.namespace,
            p.version,
            p.exec_mode,
            str(p.pid or NOT_AVAILABLE),
            record.port if online else NOT_AVAILABLE,
            path_text(record),
            uptime_text(p, now_ms),
            Text(str(p.restart_time), style="magenta"),
            status_text(p.status),
            Text(format_cpu(p.cpu), style="blue"),
            Text(format_memory(p.memory), style="green"),
            p.username,
            watch_text(p.watch),
        )
    return table


def _detail_grid(rows: list[tuple[str, object]]) -> Table:
    grid = Table.grid(padding=(0, 2))
    grid.add_column(style="bold", no_wrap=True)
    grid.add_column()
    for label, value in rows:
        grid.add_row(f"{label}:", value if isinstance(value, Text) else Text(str(value)))
    return grid


def render_details(record: ViewRecord, now_ms: float) -> Group:
    """Vertical key/value view of a single process, including its paths."""
    p = record.snapshot
    max_memory = f"{p.max_memory_restart / 1024 / 1024:g}mb" if p.max_memory_restart else NOT_AVAILABLE

    process_rows = [
        ("Name", Text(p.name, style="yellow")),
        ("ID", p.pm_id),
        ("Namespace", p.namespace),
        ("Version", p.version),
        ("Exec Mode", p.exec_mode),
        ("Interpreter", p.interpreter),
        ("Script", p.exec_path or NOT_AVAILABLE),
        ("PID", p.pid or NOT_AVAILABLE),
        ("Port", record.port),
        ("Service Path", path_text(record)),
        ("Status", status_text(p.status)),
        ("Uptime", uptime_text(p, now_ms)),
        ("Restarts", Text(str(p.restart_time), style="magenta")),
        ("User", p.username),
        ("Watching", watch_text(p.watch)),
        ("Instances", p.instances),
        ("Max Memory", max_memory),
        ("CPU", Text(format_cpu(p.cpu), style="blue")),
        ("Memory", Text(format_memory(p.memory), style="green")),
    ]
    path_rows = [
        ("CWD", p.cwd or NOT_AVAILABLE),
        ("PM2 Home", p.pm2_home or NOT_AVAILABLE),
        ("Out Log", p.out_log_path or NOT_AVAILABLE),
        ("Err Log", p.err_log_path or NOT_AVAILABLE),
    ]

    return Group(
        Text("\nProcess Details\n", style="bold cyan"),
        _detail_grid(process_rows),
        Text("\nPaths", style="bold"),
        _detail_grid(path_rows),
    )


def render_frame(result: TickResult, now_ms: float) -> RenderableType:
    """Compose one monitor frame from a tick result."""
    if result.state == TickState.NOT_FOUND:
        return Text(f'Process(es) "{result.filter}" not found', style="red")
    if result.state == TickState.EMPTY:
        return Text("No processes managed by PM2", style="yellow")
    if result.state == TickState.ERROR:
        return render_error_footer(result.error or "unknown error")

    parts = [
        Text("PM2 Live Monitor\n", style="bold cyan"),
        render_table(result.records, now_ms),
    ]
    if result.detail:
        parts.append(render_details(result.records[0], now_ms))
    return Group(*parts)


def render_error_footer(message: str) -> Text:
    return Text(f"Refresh failed: {message}", style="red")


def render_routes(pool_routes: Mapping[str, tuple[str, ...]]) -> Group:
    """Service name -> service paths table for the service path tool."""
    table = Table(header_style="bold cyan", border_style="grey50", box=box.SQUARE)
    table.add_column("Service Name")
    table.add_column("Service Path(s)", overflow="fold")

    for name, paths in pool_routes.items():
        table.add_row(Text(name, style="yellow"), Text(", ".join(paths), style="green"))

    return Group(Text("\nService Path List\n", style="bold cyan"), table)


def render_env_page(title: str, lines: list[str], position: str) -> Group:
    """One page of the environment pager."""
    body = Text("\n".join(lines)) if lines else Text("(empty)", style="grey50")
    return Group(
        Text(title, style="bold cyan"),
        body,
        Text(f"\n{position}   up/down to scroll, q to quit", style="grey50"),
    )
