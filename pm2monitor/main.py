"""
Command line entry points.

pm2-monitor [filter] [env]      live process table, or the env pager
pm2-restart <all|name|id> [-w]  restart online processes
pm2-paths [filter]              nginx service path table
"""

import asyncio
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from .config import config
from .envpager import env_lines, run_pager
from .errors import InventoryError
from .join import FilterSpec, filter_snapshots
from .monitor import LiveMonitor
from .process import Pm2Client
from .render import render_routes
from .restart import RestartOutcome, restart_processes
from .topology import TopologyResolver, filter_pool_routes

log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)


def configure_logging(to_console: bool = False):
    """
    Log to the rotating file, and to stderr for one-shot commands.

    The live monitor never logs to the terminal, it would tear the frame.
    """
    file_handler = RotatingFileHandler(
        config.monitor_log,
        maxBytes=config.log_max_bytes,
        backupCount=config.log_backup_count,
    )
    file_handler.setFormatter(log_formatter)
    handlers = [file_handler]

    if to_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(log_formatter)
        console_handler.setLevel(logging.WARNING)
        handlers.append(console_handler)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        handlers=handlers,
    )


def connect_or_exit(provider: Pm2Client):
    try:
        provider.connect()
    except InventoryError as e:
        logger.error(f"Failed to connect to PM2: {e}")
        err_console.print(f"[red]Failed to connect to PM2:[/red] {escape(str(e))}", highlight=False)
        raise typer.Exit(2)


def monitor_command(
    target: Optional[str] = typer.Argument(
        None, metavar="[FILTER]", help='all, a name or id, "a,b" or a JSON array'
    ),
    mode: Optional[str] = typer.Argument(None, metavar="[env]", help="show .env files instead"),
):
    """Live table of PM2 processes with their ports and nginx service paths."""
    configure_logging()
    if mode is not None and mode != "env":
        err_console.print(f"Unknown mode: {mode} (expected 'env')", markup=False)
        raise typer.Exit(1)

    provider = Pm2Client()
    connect_or_exit(provider)
    spec = FilterSpec.parse(target)

    if mode == "env":
        show_env(provider, spec)
        return

    topology = TopologyResolver().load()
    monitor = LiveMonitor(provider, topology, spec)
    try:
        asyncio.run(monitor.run(console))
    except KeyboardInterrupt:
        monitor.stop()


def show_env(provider: Pm2Client, spec: FilterSpec):
    try:
        selected = filter_snapshots(provider.list(), spec)
    except InventoryError as e:
        err_console.print(f"Error fetching process list: {e}", style="red", markup=False)
        raise typer.Exit(2)

    if not selected:
        err_console.print(f'Process(es) "{spec}" not found', style="red", markup=False)
        raise typer.Exit(1)

    title = f"Environment: {', '.join(p.name for p in selected)}"
    try:
        run_pager(env_lines(selected), title, console=console)
    except KeyboardInterrupt:
        pass


def restart_command(
    target: Optional[str] = typer.Argument(None, metavar="<all|name|id>"),
    watch: bool = typer.Option(False, "-w", "--w", "--watch", help="Toggle watch mode on each restarted process"),
):
    """Restart the online PM2 processes matching a name, id or all."""
    if not target:
        console.print("Usage:", style="cyan")
        console.print("  pm2-restart all")
        console.print("  pm2-restart all -w")
        console.print("  pm2-restart <name|id> [-w]")
        raise typer.Exit(1)

    configure_logging(to_console=True)
    provider = Pm2Client()
    connect_or_exit(provider)

    toggle = "[green]--ON[/green]" if watch else "[red]--OFF[/red]"
    console.print(f"[bright_blue]Restarting [yellow]Watch[/yellow] {toggle} PM2 processes [yellow]--{escape(target)}[/yellow][/bright_blue]")

    def report(outcome: RestartOutcome):
        if not outcome.ok:
            console.print(f"[red]Restart failed[/red] [yellow]{escape(outcome.name)}[/yellow]: {escape(outcome.error or '')}")
            return
        if outcome.watch is not None:
            state = "[green]ENABLED[/green]" if outcome.watch else "[grey50]DISABLED[/grey50]"
            console.print(f"[cyan]Watch[/cyan] {state} [yellow]{escape(outcome.name)}[/yellow]")
        console.print(f"[green]Restarted[/green] [yellow]{escape(outcome.name)}[/yellow] [grey50]#{outcome.pm_id}[/grey50]")

    try:
        summary = asyncio.run(restart_processes(provider, FilterSpec.parse(target), watch, on_outcome=report))
    except InventoryError as e:
        err_console.print(f"PM2 list failed: {e}", style="red", markup=False)
        raise typer.Exit(2)

    if summary.nothing_to_do:
        console.print("No online processes found", style="yellow")
        return

    line = f"Restarted {summary.succeeded} online processes"
    if summary.failed:
        line += f", {summary.failed} failed"
    console.print(line, style="bright_blue")


def paths_command(
    target: Optional[str] = typer.Argument(None, metavar="[FILTER]", help="service names or paths"),
):
    """Print the nginx service paths of each service."""
    configure_logging(to_console=True)
    topology = TopologyResolver().load()
    spec = FilterSpec.parse(target)

    routes = filter_pool_routes(topology.pool_routes, spec)
    if not routes:
        err_console.print(f"{target or ''} <= Service Not Found", style="red", markup=False, highlight=False)
        raise typer.Exit(1)

    console.print(render_routes(routes))


def monitor_main():
    typer.run(monitor_command)


def restart_main():
    typer.run(restart_command)


def paths_main():
    typer.run(paths_command)
