# storagehub/storage/base.py
"""
Storage provider interface.

Design principles:
- One provider instance per resolved bucket record, never shared across buckets
- Every operation is a coroutine; callers own timeouts and cancellation
- Downloads stream: the body is drained by the caller, not buffered here
- "Not found" is a result (404 response, exists() -> False), not an exception
- Pagination tokens are opaque and provider-owned
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional

from storagehub.storage.errors import UnsupportedOperationError
from storagehub.storage.streams import UploadData

logger = logging.getLogger(__name__)

DEFAULT_MAX_KEYS = 1000


class ProviderType(str, Enum):
    """Bucket provider discriminator stored on the bucket record."""
    NATIVE = "native"
    COMPATIBLE = "compatible"


class BucketPurpose(str, Enum):
    """Default-bucket purposes; each maps to one flag on the bucket record."""
    GENERAL = "general"
    CHAT = "chat"
    FORMS = "forms"


@dataclass(frozen=True)
class StorageObject:
    """Listing entry. A snapshot: re-list to observe changes."""
    key: str
    size: int
    last_modified: datetime
    etag: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class StorageUploadOptions:
    content_type: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


@dataclass
class StorageListOptions:
    prefix: Optional[str] = None
    max_keys: Optional[int] = None
    continuation_token: Optional[str] = None

    def effective_max_keys(self, upper_bound: int = DEFAULT_MAX_KEYS) -> int:
        """max_keys clamped to [1, upper_bound]; unset means upper_bound."""
        if not self.max_keys:
            return upper_bound
        return max(1, min(self.max_keys, upper_bound))


@dataclass
class StorageListResult:
    objects: List[StorageObject]
    is_truncated: bool = False
    continuation_token: Optional[str] = None


async def _empty_body() -> AsyncIterator[bytes]:
    return
    yield  # pragma: no cover


class StorageResponse:
    """
    Response-like result of download().

    Carries transport metadata plus a body that yields byte chunks. The body
    can be consumed once, either with iter_bytes() or read().

    Usage:
        async with await provider.download(key) as response:
            if response.not_found:
                ...
            async for chunk in response.iter_bytes():
                ...
    """

    def __init__(
        self,
        body: Optional[AsyncIterator[bytes]] = None,
        *,
        status: int = 200,
        content_type: Optional[str] = None,
        content_length: Optional[int] = None,
        etag: Optional[str] = None,
        last_modified: Optional[datetime] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.status = status
        self.content_type = content_type
        self.content_length = content_length
        self.etag = etag
        self.last_modified = last_modified
        self.metadata = metadata or {}
        self._body = body if body is not None else _empty_body()
        self._consumed = False

    @classmethod
    def not_found_response(cls) -> "StorageResponse":
        return cls(status=404)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def not_found(self) -> bool:
        return self.status == 404

    @property
    def headers(self) -> Dict[str, str]:
        """HTTP headers a route handler can pass straight through."""
        headers = {}
        if self.content_type:
            headers["Content-Type"] = self.content_type
        if self.content_length is not None:
            headers["Content-Length"] = str(self.content_length)
        if self.etag:
            headers["ETag"] = self.etag
        return headers

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise RuntimeError("Response body already consumed")
        self._consumed = True
        try:
            async for chunk in self._body:
                if chunk:
                    yield chunk
        finally:
            await self.aclose()

    async def read(self) -> bytes:
        """Drain the whole body into memory."""
        chunks = [chunk async for chunk in self.iter_bytes()]
        return b"".join(chunks)

    async def aclose(self) -> None:
        aclose = getattr(self._body, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> "StorageResponse":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"<StorageResponse status={self.status} length={self.content_length}>"


class StorageProvider(ABC):
    """
    Abstract interface for object storage.

    Implementations must handle:
    - Upload from a buffer, a readable stream, or a blob handle
    - Streaming download with a 404 result for missing keys
    - Idempotent delete
    - Single-page listing driven by opaque continuation tokens
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name ('native' or 'compatible')."""
        pass

    @property
    @abstractmethod
    def bucket_name(self) -> str:
        """Physical bucket the provider talks to."""
        pass

    @abstractmethod
    async def upload(
        self,
        key: str,
        data: UploadData,
        options: Optional[StorageUploadOptions] = None,
    ) -> None:
        """
        Create or fully overwrite the object at `key`.

        Args:
            key: Object key
            data: bytes-like buffer, readable stream, or blob handle (path)
            options: Content type and metadata for this upload

        Raises:
            UploadError: backend rejected the upload or the network failed
        """
        pass

    @abstractmethod
    async def download(self, key: str) -> StorageResponse:
        """
        Open the object at `key` for streaming.

        Returns:
            StorageResponse with a streaming body, or a 404 response if missing
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete object. Succeeds when the key does not exist."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if object exists without transferring its body."""
        pass

    @abstractmethod
    async def list(self, options: Optional[StorageListOptions] = None) -> StorageListResult:
        """Return one page of objects."""
        pass

    async def get_signed_url(self, key: str, expires_in: int = 3600) -> str:
        """Presigned GET URL for `key`, where the transport supports it."""
        raise UnsupportedOperationError(f"Signed URLs are not supported by the {self.name} provider")

    async def test_connection(self) -> bool:
        """
        Cheapest possible read against the bucket.

        Returns False on any failure instead of raising. An empty bucket is a
        successful connection.
        """
        try:
            await self.list(StorageListOptions(max_keys=1))
            return True
        except Exception as e:
            logger.warning(
                f"{self.name} connection test failed for bucket {self.bucket_name}: {type(e).__name__}"
            )
            return False
