"""Exception taxonomy for the knowledge-base administration client."""


class KBAdminError(Exception):
    """Base exception for the knowledge-base administration client."""
    pass


class ValidationError(KBAdminError):
    """Entry data is incomplete or invalid. Raised before any network call."""
    pass


class DuplicateCheckUnavailable(KBAdminError):
    """The duplicate check could not be performed. Never leaves the detector."""
    pass


class BackendError(KBAdminError):
    """The backend answered with a non-2xx status or a malformed/unsuccessful body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(BackendError):
    """The addressed entry does not exist."""
    pass


class NetworkError(KBAdminError):
    """The request never produced a response (connection, DNS, timeout)."""
    pass


class PreconditionFailedError(KBAdminError):
    """The requested transition is not allowed from the entry's current state."""
    pass


class OperationInProgressError(KBAdminError):
    """Another mutation for the same entry is still in flight."""
    pass


class SyncFailedError(KBAdminError):
    """A vector sync attempt was rejected or could not be completed."""
    pass
