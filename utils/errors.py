"""
Error Types

Exceptions raised by the backup and cleanup pipelines. The scheduler treats
every BackupManagerError as fatal to the run that raised it, except
ExtractionError which only drops a single window.
"""


class BackupManagerError(Exception):
    """Base class for all service errors."""


class ConfigError(BackupManagerError):
    """Configuration could not be loaded or validated."""


class ExtractionError(BackupManagerError):
    """Count probe or document retrieval failed for one window."""


class MergeError(BackupManagerError):
    """Window artifacts could not be merged into a day artifact."""


class CompressionError(BackupManagerError):
    """Day artifact could not be compressed."""


class UploadError(BackupManagerError):
    """Compressed artifact could not be delivered to object storage."""


class CleanupError(BackupManagerError):
    """Delete-by-query against the index failed."""


class RetryExhausted(BackupManagerError):
    """All attempts of a retried operation failed."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException | None) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")


class RunCancelled(BackupManagerError):
    """The shared cancellation token fired while a run was in progress."""
