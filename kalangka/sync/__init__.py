"""Background synchronization: connectivity, outbox and per-kind coordinators."""

from kalangka.sync.connectivity import ConnectivityGate
from kalangka.sync.coordinator import SyncCoordinator
from kalangka.sync.outbox import SyncOutbox, SyncTask
from kalangka.sync.schemas import PullReport, SyncOutcome, SyncReport

__all__ = [
    "ConnectivityGate",
    "SyncCoordinator",
    "SyncOutbox",
    "SyncTask",
    "PullReport",
    "SyncOutcome",
    "SyncReport",
]
