"""Error taxonomy for local persistence and background sync.

Local errors (validation, not found, duplicate key, storage) propagate to the
caller of a repository method. Sync errors are raised by the remote layer and
handled inside the sync coordinator; they never reach the caller of a local
write.
"""


class KalangkaError(Exception):
    """Base class for all engine errors."""


class ValidationError(KalangkaError):
    """Caller-supplied data failed a precondition; nothing was persisted."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(KalangkaError):
    """The record does not exist or is not visible."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class StorageError(KalangkaError):
    """Local persistence failure."""


class DuplicateKeyError(StorageError):
    """A uniqueness constraint was violated."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class SyncError(KalangkaError):
    """Base class for background sync failures."""


class OfflineError(SyncError):
    """The device is offline; sync was skipped."""


class RemoteUnreachableError(SyncError):
    """Transport failure or server-side error while talking to the remote."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SyncTimeoutError(RemoteUnreachableError):
    """The remote call exceeded its timeout."""


class RemoteRejectedError(SyncError):
    """The remote answered with a 4xx other than 404/409."""

    def __init__(self, message: str, status_code: int, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ConflictError(SyncError):
    """The remote answered 409: it already holds an equivalent record."""

    status_code = 409
