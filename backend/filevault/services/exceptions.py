"""Errors raised by the file lifecycle service and its stores."""


class FileServiceError(Exception):
    """Base class for all file service errors."""
    pass


class NotFoundError(FileServiceError):
    """Raised when no metadata row exists for the requested file."""

    def __init__(self, file_id: str):
        super().__init__(f"File not found: {file_id}")
        self.file_id = file_id


class StorageError(FileServiceError):
    """Raised when an object store operation fails."""
    pass


class StorageWriteError(StorageError):
    """Raised when writing an object to the store fails."""
    pass


class ConstraintError(FileServiceError):
    """Raised when a metadata insert violates a uniqueness constraint."""
    pass


class PolicyViolationError(FileServiceError):
    """Raised at the upload boundary when a file breaks its purpose policy."""
    pass
