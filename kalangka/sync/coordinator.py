"""Per-kind reconciliation between the local store and the remote."""

import logging

from pydantic import BaseModel

from kalangka.entities.repository import EntityRepository
from kalangka.entities.serializers import from_payload, to_payload
from kalangka.errors import ConflictError, SyncError
from kalangka.media import MediaStore, is_remote
from kalangka.remote.client import RemoteApi
from kalangka.remote.storage import BlobUploader
from kalangka.sync.connectivity import ConnectivityGate
from kalangka.sync.schemas import PullReport, SyncOutcome, SyncReport

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Drives records of one kind to the remote and pulls remote records back.

    Per record:

    - not synced, not deleted: upload the photo if it is a local file, then
      GET the remote copy and POST (404) or PUT (found). A 409 means the
      remote already holds the record and counts as success.
    - not synced, soft-deleted: GET, DELETE if present, then remove the
      local row.
    - gone locally with a tombstone: DELETE remotely, then drop the tombstone.

    A record already being synced is skipped, so concurrent triggers for the
    same id produce a single set of remote calls.
    """

    def __init__(
        self,
        repository: EntityRepository,
        remote: RemoteApi,
        uploader: BlobUploader,
        gate: ConnectivityGate,
        media: MediaStore | None = None,
    ):
        """Initialize the coordinator.

        Args:
            repository: Repository of the kind being synced.
            remote: REST API client.
            uploader: Photo uploader.
            gate: Connectivity gate consulted before any remote call.
            media: Media store used to download photos of pulled records.
        """
        self.repository = repository
        self.kind = repository.kind
        self.remote = remote
        self.uploader = uploader
        self.gate = gate
        self.media = media
        self._in_progress: set[str] = set()

    @property
    def in_progress(self) -> frozenset[str]:
        """Ids currently being synced."""
        return frozenset(self._in_progress)

    async def sync_record(self, record_id: str) -> SyncOutcome:
        """Bring one record's remote copy in line with the local row.

        Args:
            record_id: Record id.

        Returns:
            SyncOutcome: What happened.

        Raises:
            StorageError: If the local store fails.
        """
        if record_id in self._in_progress:
            logger.debug(f"{self.kind.name} {record_id} already syncing, skipping")
            return SyncOutcome.SKIPPED

        self._in_progress.add(record_id)
        try:
            return await self._sync_record(record_id)
        finally:
            self._in_progress.discard(record_id)

    async def _sync_record(self, record_id: str) -> SyncOutcome:
        if not self.gate.is_online():
            logger.info(f"Offline, {self.kind.name} {record_id} will sync later")
            return SyncOutcome.OFFLINE

        record = await self.repository.get(record_id, include_deleted=True)
        if record is None:
            if await self.repository.has_pending_deletion(record_id):
                return await self._propagate_hard_delete(record_id)
            return SyncOutcome.SKIPPED

        if record.is_synced:
            return SyncOutcome.SKIPPED

        if getattr(record, "deleted_at", None) is not None:
            return await self._sync_soft_delete(record)
        return await self._upsert(record)

    async def _resolve_image(self, record: BaseModel) -> str | None:
        """Remote URL to send for the record's photo."""
        if not self.kind.image_field:
            return None
        ref = getattr(record, self.kind.image_field)
        if not ref:
            return None
        if is_remote(ref):
            return ref

        url = await self.uploader.upload(self.kind.name, record.id, ref)
        if url is None:
            logger.warning(
                f"Image upload failed for {self.kind.name} {record.id}, proceeding without image"
            )
        return url

    async def _upsert(self, record: BaseModel) -> SyncOutcome:
        resource = self.kind.resource
        payload = to_payload(self.kind, record, await self._resolve_image(record))

        try:
            existing = await self.remote.fetch(resource, record.id)
            if existing is None:
                await self.remote.create(resource, payload)
                logger.info(f"Created {self.kind.name} {record.id} on server")
            else:
                await self.remote.update(resource, record.id, payload)
                logger.info(f"Updated {self.kind.name} {record.id} on server")
        except ConflictError:
            logger.info(f"{self.kind.name} {record.id} already exists on server, marking synced")
            await self.repository.mark_synced(record.id, record.updated_at)
            return SyncOutcome.CONFLICT
        except SyncError as e:
            logger.warning(f"Failed to sync {self.kind.name} {record.id}: {e}")
            return SyncOutcome.FAILED

        await self.repository.mark_synced(record.id, record.updated_at)
        return SyncOutcome.SYNCED

    async def _sync_soft_delete(self, record: BaseModel) -> SyncOutcome:
        resource = self.kind.resource
        try:
            if await self.remote.fetch(resource, record.id) is not None:
                await self.remote.delete(resource, record.id)
        except SyncError as e:
            logger.warning(f"Failed to delete {self.kind.name} {record.id} on server: {e}")
            return SyncOutcome.FAILED

        removed = await self.repository.hard_delete(
            record.id, propagate=False, expected_updated_at=record.updated_at
        )
        if not removed:
            logger.info(
                f"{self.kind.name} {record.id} changed during delete sync, keeping it unsynced"
            )
            return SyncOutcome.SKIPPED
        logger.info(f"Deleted {self.kind.name} {record.id} on server and locally")
        return SyncOutcome.DELETED

    async def _propagate_hard_delete(self, record_id: str) -> SyncOutcome:
        try:
            await self.remote.delete(self.kind.resource, record_id)
        except SyncError as e:
            logger.warning(f"Failed to delete {self.kind.name} {record_id} on server: {e}")
            return SyncOutcome.FAILED

        await self.repository.clear_pending_deletion(record_id)
        logger.info(f"Deleted {self.kind.name} {record_id} on server")
        return SyncOutcome.DELETED

    async def sync_all(self) -> SyncReport:
        """Drive every unsynced record (soft-deleted included) and tombstone.

        Each record is isolated: one failure never stops the sweep.

        Returns:
            SyncReport: Per-outcome counts.
        """
        report = SyncReport(kind=self.kind.name)
        if not self.gate.is_online():
            logger.info(f"Offline, skipping {self.kind.name} sync")
            report.offline = True
            return report

        record_ids = [record.id for record in await self.repository.find_unsynced()]
        for record_id in await self.repository.pending_deletions():
            if record_id not in record_ids:
                record_ids.append(record_id)

        logger.info(f"Syncing {len(record_ids)} unsynced {self.kind.name} records")
        for record_id in record_ids:
            try:
                outcome = await self.sync_record(record_id)
            except Exception as e:
                logger.exception(f"Error syncing {self.kind.name} {record_id}")
                report.add_error(record_id, e)
                continue
            report.record(outcome)

        logger.info(
            f"{self.kind.name} sync done: {report.synced} synced, {report.conflicts} conflicts, "
            f"{report.deleted} deleted, {report.failed} failed"
        )
        return report

    async def pull(self) -> PullReport:
        """Import remote records into the local store.

        New records are inserted as synced; a local record is overwritten only
        when the remote copy has a newer ``updated_at``. Records with a pending
        local deletion are ignored.

        Returns:
            PullReport: Per-outcome counts.
        """
        report = PullReport(kind=self.kind.name)
        if not self.gate.is_online():
            logger.info(f"Offline, skipping {self.kind.name} pull")
            report.offline = True
            return report

        try:
            remote_records = await self.remote.fetch_all(self.kind.resource)
        except SyncError as e:
            logger.warning(f"Failed to fetch {self.kind.resource} from server: {e}")
            report.add_error(None, e)
            return report

        report.fetched = len(remote_records)
        tombstones = set(await self.repository.pending_deletions())

        for data in remote_records:
            record_id = data.get("id") if isinstance(data, dict) else None
            if not record_id or record_id in tombstones or data.get("deleted_at"):
                report.skipped += 1
                continue
            try:
                await self._pull_record(record_id, data, report)
            except Exception as e:
                logger.exception(f"Error importing {self.kind.name} {record_id}")
                report.add_error(record_id, e)

        logger.info(
            f"{self.kind.name} pull done: {report.inserted} new, {report.updated} updated, "
            f"{report.unchanged} unchanged, {report.failed} failed"
        )
        return report

    async def _localize_image(self, record_id: str, values: dict) -> None:
        field = self.kind.image_field
        if self.media is None or not field or not values.get(field):
            return
        values[field] = await self.media.localize(self.kind.name, record_id, values[field])

    async def _pull_record(self, record_id: str, data: dict, report: PullReport) -> None:
        values = from_payload(self.kind, data)
        local = await self.repository.get(record_id, include_deleted=True)

        if local is None:
            await self._localize_image(record_id, values)
            await self.repository.import_remote(values)
            report.inserted += 1
            return

        # A pending local delete outranks any remote edit
        if getattr(local, "deleted_at", None) is not None and not local.is_synced:
            report.skipped += 1
            return

        remote_updated = values.get("updated_at")
        if remote_updated is not None and (
            local.updated_at is None or remote_updated > local.updated_at
        ):
            await self._localize_image(record_id, values)
            await self.repository.overwrite_from_remote(record_id, values)
            report.updated += 1
            return

        report.unchanged += 1
