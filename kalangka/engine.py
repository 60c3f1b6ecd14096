"""Composition root wiring the store, repositories and sync services."""

import asyncio
import logging

from kalangka.config import Settings, get_settings
from kalangka.db.database import LocalStore
from kalangka.entities.kinds import KINDS, get_kind
from kalangka.entities.repository import EntityRepository
from kalangka.entities.schemas import EntityStats
from kalangka.media import MediaStore
from kalangka.remote.client import RemoteApi
from kalangka.remote.storage import BlobUploader
from kalangka.sync.connectivity import ConnectivityGate
from kalangka.sync.coordinator import SyncCoordinator
from kalangka.sync.outbox import SyncOutbox, SyncTask
from kalangka.sync.schemas import PullReport, SyncReport

logger = logging.getLogger(__name__)


class SyncEngine:
    """One instance per database file, shared by every caller.

    Builds a repository and a sync coordinator per entity kind on top of a
    single local store, REST client, uploader, media store, connectivity gate
    and outbox. Any collaborator can be passed in, which is how tests swap in
    mocks.

    Example:
        async with SyncEngine() as engine:
            tree_id = await engine.trees.create(
                {"description": "Mango #1", "latitude": 14.5, "longitude": 120.9}
            )
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: LocalStore | None = None,
        remote: RemoteApi | None = None,
        uploader: BlobUploader | None = None,
        media: MediaStore | None = None,
        gate: ConnectivityGate | None = None,
        outbox: SyncOutbox | None = None,
    ):
        self.settings = settings or get_settings()
        s = self.settings

        self.store = store or LocalStore(s.database_url, echo=s.debug)
        self.remote = remote or RemoteApi(s.api_base_url, timeout=s.request_timeout)
        self.uploader = uploader or BlobUploader(s.supabase_url, s.supabase_key, s.storage_bucket)
        self.media = media or MediaStore(s.media_dir)
        self.gate = gate or ConnectivityGate(s.probe_url, timeout=s.request_timeout)
        self.outbox = outbox or SyncOutbox(
            max_retries=s.sync_max_retries, retry_backoff=s.sync_retry_backoff
        )
        self.outbox.set_handler(self.handle_task)

        self._repositories = {
            name: EntityRepository(kind, self.store, notify=self.outbox.enqueue)
            for name, kind in KINDS.items()
        }
        self._coordinators = {
            name: SyncCoordinator(repo, self.remote, self.uploader, self.gate, self.media)
            for name, repo in self._repositories.items()
        }

        self._unsubscribe = None
        self._stop_event: asyncio.Event | None = None
        self._watch_task: asyncio.Task | None = None

    @property
    def trees(self) -> EntityRepository:
        return self._repositories["tree"]

    @property
    def flowers(self) -> EntityRepository:
        return self._repositories["flower"]

    @property
    def fruits(self) -> EntityRepository:
        return self._repositories["fruit"]

    @property
    def users(self) -> EntityRepository:
        return self._repositories["user"]

    def repository(self, kind: str) -> EntityRepository:
        """Repository for a kind name.

        Raises:
            KeyError: If the kind is unknown.
        """
        return self._repositories[get_kind(kind).name]

    def coordinator(self, kind: str) -> SyncCoordinator:
        """Sync coordinator for a kind name.

        Raises:
            KeyError: If the kind is unknown.
        """
        return self._coordinators[get_kind(kind).name]

    async def handle_task(self, task: SyncTask):
        """Outbox handler: sync one record or sweep a whole kind."""
        coordinator = self.coordinator(task.kind)
        if task.is_sweep:
            return await coordinator.sync_all()
        return await coordinator.sync_record(task.record_id)

    def enqueue_sweeps(self) -> None:
        """Queue a sync sweep of every kind, parents first."""
        for name in KINDS:
            self.outbox.enqueue(name)

    async def _on_connectivity_change(self, online: bool) -> None:
        if online:
            logger.info("Back online, queueing sync of all records")
            self.enqueue_sweeps()

    async def start(self, watch_connectivity: bool = False) -> None:
        """Open the store and start background sync.

        Args:
            watch_connectivity: Poll the probe URL in the background.
        """
        await self.store.open()
        if self._unsubscribe is None:
            self._unsubscribe = self.gate.subscribe(self._on_connectivity_change)
        await self.outbox.start()

        if watch_connectivity and self._watch_task is None:
            self._stop_event = asyncio.Event()
            self._watch_task = asyncio.create_task(
                self.gate.watch(self.settings.connectivity_probe_interval, self._stop_event)
            )

        if self.gate.is_online():
            self.enqueue_sweeps()
        logger.info("Sync engine started")

    async def stop(self) -> None:
        """Stop background work and release every resource."""
        if self._watch_task is not None:
            self._stop_event.set()
            await self._watch_task
            self._watch_task = None
            self._stop_event = None

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        await self.outbox.stop()
        await self.remote.close()
        await self.media.close()
        await self.gate.close()
        await self.store.close()
        logger.info("Sync engine stopped")

    async def __aenter__(self) -> "SyncEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def sync_all(self) -> dict[str, SyncReport]:
        """Push every unsynced record, kind by kind in parent-first order."""
        reports = {}
        for name, coordinator in self._coordinators.items():
            reports[name] = await coordinator.sync_all()
        return reports

    async def pull_all(self, push_first: bool = True) -> dict[str, PullReport]:
        """Import remote records for every kind.

        Args:
            push_first: Push local edits before pulling so a newer remote
                copy cannot silently replace an unpushed local change.

        Returns:
            dict[str, PullReport]: Report per kind.
        """
        if push_first:
            await self.sync_all()
        reports = {}
        for name, coordinator in self._coordinators.items():
            reports[name] = await coordinator.pull()
        return reports

    async def stats(self) -> dict[str, EntityStats]:
        """Statistics for every kind."""
        return {name: await repo.stats() for name, repo in self._repositories.items()}
