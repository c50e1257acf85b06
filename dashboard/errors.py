class SyncError(Exception):
    pass


class ValidationError(SyncError, ValueError):
    """A record is missing a required field or carries an unusable value."""


class ConflictError(SyncError, ValueError):
    """The owner already has a habit with this name."""


class TransientIOError(SyncError, RuntimeError):
    """A tier could not be reached; callers fall back to local tiers."""


class NotFoundError(SyncError, LookupError):
    pass
