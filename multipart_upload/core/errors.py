"""
Error taxonomy for the upload service.

Every error carries a stable ``code`` tag and a human-readable message. The
API layer maps codes to HTTP statuses; nothing else about the failure (file
paths, credentials, store stack traces) is surfaced.
"""


class UploadError(Exception):
    """Base exception for upload errors."""

    code = "upload_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class ValidationError(UploadError):
    """Raised when caller input (metadata, part ranges) is invalid."""

    code = "validation_error"


class ConfigurationError(ValidationError):
    """Raised when a chunk size falls outside the store's part-size limits."""

    code = "configuration_error"


class PartValidationError(UploadError):
    """Raised when a completion part list has gaps, duplicates or missing tags."""

    code = "part_validation_error"


class AlreadyCompletedError(UploadError):
    """Raised when an object key has already been finalized."""

    code = "already_completed"

    def __init__(self, object_key: str):
        self.object_key = object_key
        super().__init__(f"Upload has already been completed for {object_key}")


class StoreError(UploadError):
    """Raised when the object store rejects or fails an operation."""

    code = "store_error"


class NotFoundError(UploadError):
    """Raised when a session or task is unknown."""

    code = "not_found"


class ResumeNotAllowedError(UploadError):
    """Raised when a task cannot be resumed in its current state."""

    code = "resume_not_allowed"


class QueueFullError(UploadError):
    """Raised when the upload worker pool cannot accept more work."""

    code = "queue_full"
