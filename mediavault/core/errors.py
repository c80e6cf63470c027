"""
Error taxonomy for the media engine.

Mandatory paths (quota check, primary write) raise and abort the operation.
Best-effort paths (backup write, embedding, classification) catch these at
their call site and turn them into advisory fields.
"""


class MediaVaultError(Exception):
    """Base class for every error raised by the engine."""


class QuotaExceeded(MediaVaultError):
    def __init__(self, current_usage: int, limit: int, requested: int = 0):
        self.current_usage = current_usage
        self.limit = limit
        self.requested = requested
        super().__init__(
            f"Storage limit reached: {current_usage / (1024 * 1024):.2f}MB used "
            f"of {limit / (1024 * 1024):.2f}MB"
        )


class PrimaryStoreFailure(MediaVaultError):
    pass


class BackupStoreFailure(MediaVaultError):
    pass


class EmbeddingFailure(MediaVaultError):
    pass


class NotFound(MediaVaultError):
    pass


class NoBackupAvailable(MediaVaultError):
    """Restore cannot proceed because no backup copy exists. Not retryable."""


class FetchFailed(MediaVaultError):
    """The backup exists but could not be read."""


class RepublishFailed(MediaVaultError):
    """The backup was read but the primary store rejected the re-upload."""


class RateLimited(PrimaryStoreFailure):
    def __init__(self, message: str = "rate limited", retry_after: float | None = None):
        self.retry_after = retry_after
        super().__init__(message)


class BatchTooLarge(MediaVaultError, ValueError):
    """A caller asked for an existence-check chunk above the provider ceiling."""
