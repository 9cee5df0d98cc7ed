"""Command line interface for the feed relay."""

import asyncio
import json
import signal
from dataclasses import asdict
from functools import wraps
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import click
import structlog
from dotenv import load_dotenv

from feed_relay.config import MonitorConfig
from feed_relay.delivery import LogChannel
from feed_relay.exceptions import FeedRelayError
from feed_relay.logging_config import configure_logging
from feed_relay.metrics import start_metrics_server
from feed_relay.monitor import FeedMonitor
from feed_relay.registry import FeedEntry

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def load_config(config_path: Optional[Path] = None) -> MonitorConfig:
    """Load configuration from the environment, overridden by an optional JSON file."""
    load_dotenv()
    config = MonitorConfig.from_env()

    if config_path and config_path.exists():
        with open(config_path) as f:
            user_config = json.load(f)
            config = MonitorConfig.from_dict({**asdict(config), **user_config})

    return config.validate()


def async_command(f):
    """Decorator to run async Click commands."""

    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))

    return wrapper


async def _with_monitor(
    config: MonitorConfig, action: Callable[[FeedMonitor], Awaitable[T]]
) -> T:
    """Run an action against the stored registry without starting any schedule.

    The snapshot is claimed for the duration of the action, so a running
    engine and an offline edit never write it concurrently.
    """
    monitor = FeedMonitor(config)
    try:
        await monitor.load()
        return await action(monitor)
    except FeedRelayError as e:
        raise click.ClickException(e.message) from e
    finally:
        await monitor.stop()


def _describe(entry: FeedEntry) -> str:
    last_checked = entry.last_checked.isoformat() if entry.last_checked else "never"
    state = "active" if entry.active else "paused"
    return (
        f"{entry.title}\n"
        f"  url:          {entry.url}\n"
        f"  interval:     {entry.interval / 60:g} minutes\n"
        f"  state:        {state}\n"
        f"  last checked: {last_checked}"
    )


@click.group()
@click.option(
    "--config", "-c", type=click.Path(exists=True, path_type=Path), help="Path to config file"
)
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx, config, json_logs):
    """Feed relay: watch RSS/Atom feeds and relay new items."""
    cfg = load_config(config)
    configure_logging(cfg.log_level, json_output=json_logs)
    ctx.obj = cfg


async def serve(config: MonitorConfig, dry_run: bool = False) -> None:
    """Run the monitor until SIGINT or SIGTERM."""
    monitor = FeedMonitor(config, channel=LogChannel() if dry_run else None)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except (NotImplementedError, RuntimeError):
            pass

    await monitor.start()
    try:
        await stop_event.wait()
        logger.info("shutdown_signal_received")
    finally:
        await monitor.stop()


@cli.command()
@click.option("--dry-run", is_flag=True, help="Log items instead of delivering them")
@click.option("--metrics-port", type=int, default=None, help="Expose Prometheus metrics")
@click.pass_obj
def run(config: MonitorConfig, dry_run: bool, metrics_port: Optional[int]):
    """Start monitoring every registered feed."""
    port = metrics_port or config.metrics_port
    if port:
        start_metrics_server(port)
        logger.info("metrics_server_started", port=port)

    try:
        asyncio.run(serve(config, dry_run=dry_run))
    except FeedRelayError as e:
        raise click.ClickException(e.message) from e
    except KeyboardInterrupt:
        click.echo("\nShutting down...")


@cli.command()
@click.argument("destination")
@click.argument("url")
@click.option(
    "--interval",
    "-i",
    type=click.IntRange(1, 1440),
    default=None,
    help="Check interval in minutes",
)
@click.pass_obj
@async_command
async def add(config: MonitorConfig, destination: str, url: str, interval: Optional[int]):
    """Register a feed for a destination."""
    seconds = interval * 60 if interval else None
    entry = await _with_monitor(config, lambda m: m.add_feed(destination, url, seconds))
    click.echo(f"Successfully added feed: {entry.title}")
    click.echo(_describe(entry))


@cli.command()
@click.argument("destination")
@click.argument("url")
@click.pass_obj
@async_command
async def remove(config: MonitorConfig, destination: str, url: str):
    """Unregister a feed from a destination."""
    entry = await _with_monitor(config, lambda m: m.remove_feed(destination, url))
    click.echo(f"Successfully removed feed: {entry.title}")


@cli.command(name="list")
@click.argument("destination")
@click.pass_obj
@async_command
async def list_command(config: MonitorConfig, destination: str):
    """List the feeds of a destination."""

    async def collect(monitor: FeedMonitor):
        return monitor.list_feeds(destination)

    entries = await _with_monitor(config, collect)
    if not entries:
        click.echo("No feeds registered for this destination")
        return

    click.echo(f"{len(entries)} feed(s) for {destination}:")
    for entry in entries:
        click.echo(_describe(entry))


@cli.command()
@click.argument("destination")
@click.argument("url")
@click.pass_obj
@async_command
async def pause(config: MonitorConfig, destination: str, url: str):
    """Stop checking a feed without removing it."""
    entry = await _with_monitor(config, lambda m: m.set_active(destination, url, False))
    click.echo(f"Paused feed: {entry.title}")


@cli.command()
@click.argument("destination")
@click.argument("url")
@click.pass_obj
@async_command
async def resume(config: MonitorConfig, destination: str, url: str):
    """Resume checking a paused feed."""
    entry = await _with_monitor(config, lambda m: m.set_active(destination, url, True))
    click.echo(f"Resumed feed: {entry.title}")


@cli.command()
@click.pass_obj
@async_command
async def stats(config: MonitorConfig):
    """Print registry statistics."""

    async def collect(monitor: FeedMonitor):
        return monitor.statistics()

    statistics = await _with_monitor(config, collect)
    click.echo("\nFeed Relay Statistics:")
    click.echo("-" * 40)
    for name, value in statistics.items():
        click.echo(f"{name.replace('_', ' ').title():<25} {value:>10}")


if __name__ == "__main__":
    cli()
