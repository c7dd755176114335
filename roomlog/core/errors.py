"""
Error taxonomy for the shared room log.

A missing room or file is not an error: loaders return None for it.
Everything below surfaces to the caller with its specific type so that
"nothing there" stays distinguishable from "something went wrong".
"""


class RoomLogError(Exception):
    """Base class for roomlog errors."""
    pass


class CorruptDataError(RoomLogError):
    """Raised when stored bytes cannot be decoded into a log or identity."""
    pass


class LockTimeoutError(RoomLogError):
    """Raised when the cross-process file lock is not acquired after all retries."""

    def __init__(self, path: str, attempts: int):
        self.path = path
        self.attempts = attempts
        super().__init__(f"Could not lock {path} after {attempts} attempts")


class ResourceDisappearedError(RoomLogError):
    """Raised when a room's file vanishes between pre-creation and lock acquisition."""

    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"Chat room disappeared during lock acquisition: {resource_id}")


class ResourceNotFoundError(RoomLogError):
    """Raised by operations that require an existing room."""

    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"Chat room not found: {resource_id}")


class NotInitializedError(RoomLogError):
    """Raised when a manager is used before initialize()."""
    pass
