"""Command-line interface for the Kalangka sync engine."""

import asyncio
import json
import logging
import signal
import sys

import click

from kalangka import __version__
from kalangka.config import get_settings
from kalangka.engine import SyncEngine
from kalangka.entities.kinds import KINDS
from kalangka.errors import KalangkaError, OfflineError

logger = logging.getLogger(__name__)

KIND_CHOICE = click.Choice(list(KINDS))


def setup_logging(level: str) -> None:
    """Set up logging configuration.

    Args:
        level: Log level string.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )


def build_engine() -> SyncEngine:
    """Create an engine from the environment settings."""
    return SyncEngine(get_settings())


def _run(coro):
    """Run a coroutine, turning engine errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except KalangkaError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    default=None,
    help="Logging level (DEBUG, INFO, WARNING, ERROR). Defaults to LOG_LEVEL.",
)
def main(log_level: str | None):
    """Kalangka - offline-first sync for jackfruit field records.

    Records are kept in a local database and pushed to the Kalangka
    server whenever it is reachable.
    """
    setup_logging(log_level or get_settings().log_level)


@main.command("init-db")
def init_db():
    """Create the local database schema."""

    async def _init():
        engine = build_engine()
        try:
            await engine.store.open()
        finally:
            await engine.stop()
        return engine.store.database_url

    url = _run(_init())
    click.echo(f"Database ready: {url}")


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print statistics as JSON")
def stats(as_json: bool):
    """Show record and sync counts per kind."""

    async def _stats():
        engine = build_engine()
        try:
            return await engine.stats()
        finally:
            await engine.stop()

    results = _run(_stats())

    if as_json:
        click.echo(json.dumps({name: s.model_dump() for name, s in results.items()}, indent=2))
        return

    click.echo("\n=== Kalangka Records ===\n")
    for name, s in results.items():
        line = f"{name:<7} total={s.total} synced={s.synced} unsynced={s.unsynced}"
        if KINDS[name].soft_delete:
            line += f" deleted={s.deleted}"
        if s.pending_deletions:
            line += f" pending_deletions={s.pending_deletions}"
        if s.categories:
            line += " " + " ".join(f"{k}={v}" for k, v in s.categories.items())
        click.echo(line)


async def _go_online(engine: SyncEngine) -> None:
    await engine.store.open()
    if not await engine.gate.probe():
        raise OfflineError(f"Server unreachable ({engine.gate.probe_url}), nothing synced.")


@main.command()
@click.option("--kind", "-k", type=KIND_CHOICE, default=None, help="Only sync this kind")
def sync(kind: str | None):
    """Push unsynced local records to the server."""

    async def _sync():
        engine = build_engine()
        try:
            await _go_online(engine)
            if kind:
                return {kind: await engine.coordinator(kind).sync_all()}
            return await engine.sync_all()
        finally:
            await engine.stop()

    reports = _run(_sync())

    failed = 0
    for name, report in reports.items():
        failed += report.failed
        click.echo(
            f"{name:<7} synced={report.synced} conflicts={report.conflicts} "
            f"deleted={report.deleted} skipped={report.skipped} failed={report.failed}"
        )
    if failed:
        click.echo(f"\n{failed} records failed and will be retried on the next sync.")


@main.command()
@click.option("--kind", "-k", type=KIND_CHOICE, default=None, help="Only pull this kind")
@click.option("--no-push", is_flag=True, help="Pull without pushing local changes first")
def pull(kind: str | None, no_push: bool):
    """Import records from the server."""

    async def _pull():
        engine = build_engine()
        try:
            await _go_online(engine)
            if kind:
                if not no_push:
                    await engine.coordinator(kind).sync_all()
                return {kind: await engine.coordinator(kind).pull()}
            return await engine.pull_all(push_first=not no_push)
        finally:
            await engine.stop()

    reports = _run(_pull())

    for name, report in reports.items():
        click.echo(
            f"{name:<7} fetched={report.fetched} new={report.inserted} "
            f"updated={report.updated} unchanged={report.unchanged} failed={report.failed}"
        )


@main.command()
def status():
    """Show configuration and server reachability."""
    settings = get_settings()

    click.echo("\n=== Kalangka Status ===\n")
    click.echo(f"Database: {settings.database_url}")
    click.echo(f"API: {settings.api_base_url}")
    storage_ready = bool(settings.supabase_url and settings.supabase_key)
    click.echo(f"Photo storage: {'configured' if storage_ready else 'NOT CONFIGURED'}")
    click.echo(f"Bucket: {settings.storage_bucket}")
    click.echo(f"Media directory: {settings.media_dir}")

    async def _status():
        engine = build_engine()
        try:
            online = await engine.gate.probe()
            stats = await engine.stats()
            pending = {name: s.unsynced + s.pending_deletions for name, s in stats.items()}
        finally:
            await engine.stop()
        return online, pending

    online, pending = _run(_status())
    click.echo(f"Server: {'ONLINE' if online else 'OFFLINE'}")
    click.echo(f"Pending sync: {sum(pending.values())}")
    for name, count in pending.items():
        if count:
            click.echo(f"  {name}: {count}")


@main.command()
def run():
    """Run the sync engine until interrupted.

    Polls server reachability and pushes unsynced records whenever the
    server becomes reachable. Press Ctrl+C to stop.
    """

    async def _run_forever():
        engine = build_engine()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        await engine.start(watch_connectivity=True)
        try:
            await stop_event.wait()
        finally:
            logger.info("Shutdown signal received")
            await engine.stop()

    click.echo("Starting Kalangka sync engine... (Ctrl+C to stop)")
    _run(_run_forever())


if __name__ == "__main__":
    main()
