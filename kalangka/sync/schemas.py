"""Sync outcomes and sweep reports."""

import enum

from pydantic import BaseModel, Field


class SyncOutcome(str, enum.Enum):
    """Result of driving one record through the sync state machine."""

    SYNCED = "synced"
    CONFLICT = "conflict"
    DELETED = "deleted"
    SKIPPED = "skipped"
    OFFLINE = "offline"
    FAILED = "failed"


class SyncReport(BaseModel):
    """Summary of a push sweep over one entity kind."""

    kind: str
    offline: bool = False
    attempted: int = 0
    synced: int = 0
    conflicts: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[dict] = Field(default_factory=list)

    def record(self, outcome: SyncOutcome) -> None:
        """Count one per-record outcome."""
        self.attempted += 1
        if outcome is SyncOutcome.SYNCED:
            self.synced += 1
        elif outcome is SyncOutcome.CONFLICT:
            self.conflicts += 1
        elif outcome is SyncOutcome.DELETED:
            self.deleted += 1
        elif outcome is SyncOutcome.FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    def add_error(self, record_id: str, error: Exception | str) -> None:
        self.attempted += 1
        self.failed += 1
        self.errors.append({"record_id": record_id, "error": str(error)})


class PullReport(BaseModel):
    """Summary of a pull sweep over one entity kind.

    Attributes:
        kind: Entity kind name.
        offline: The sweep did not run because the device is offline.
        fetched: Remote records received.
        inserted: Records new to this device.
        updated: Local records overwritten by a newer remote copy.
        unchanged: Local records already current (or locally newer).
        skipped: Remote records ignored (pending local deletion, no id).
        failed: Records that could not be imported.
        errors: Per-record error details.
    """

    kind: str
    offline: bool = False
    fetched: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[dict] = Field(default_factory=list)

    def add_error(self, record_id: str | None, error: Exception | str) -> None:
        self.failed += 1
        self.errors.append({"record_id": record_id, "error": str(error)})
