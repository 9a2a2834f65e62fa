# storagehub/storage/errors.py
"""
Error taxonomy for the storage layer.

- ConfigurationError: the bucket record cannot produce a working provider
- TransportError: the backend rejected a call or the network failed
- "Not found" is never an exception: download() returns a 404 response and
  exists() returns False.

Messages are safe to log but callers should return `user_message` to end users,
never str(error).
"""

from typing import Optional


class StorageError(Exception):
    """Base class for all storage errors."""

    user_message = "Storage operation failed"


class ConfigurationError(StorageError):
    """Bucket configuration is missing, invalid, or points at an unavailable binding."""

    user_message = "Storage bucket is not configured correctly"


class UnsupportedProviderError(ConfigurationError):
    """Bucket declares a provider type this build does not know."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Unsupported storage provider: {provider!r}. Available: native, compatible")


class BucketNotFoundError(ConfigurationError):
    """No bucket record exists for the requested id or purpose."""

    user_message = "Storage bucket not found"

    def __init__(self, message: str):
        super().__init__(message)


class UnsupportedOperationError(StorageError):
    """The active transport has no way to perform the requested operation."""


class TransportError(StorageError):
    """
    Backend or network failure.

    Preserves the backend status/code/message for diagnostics. Never retried
    inside the storage layer.
    """

    operation = "request"

    def __init__(
        self,
        key: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.key = key
        self.status_code = status_code
        self.code = code
        self.backend_message = message

        parts = [f"{self.operation} failed"]
        if key is not None:
            parts.append(f"for {key!r}")
        detail = ", ".join(str(p) for p in (code, status_code) if p is not None)
        text = " ".join(parts)
        if detail:
            text += f" ({detail})"
        if message:
            text += f": {message}"
        super().__init__(text)


class UploadError(TransportError):
    operation = "upload"


class DownloadError(TransportError):
    operation = "download"


class DeleteError(TransportError):
    operation = "delete"


class ListError(TransportError):
    operation = "list"


class ProbeError(TransportError):
    """Raised by exists() for failures other than "not found"."""

    operation = "exists"
