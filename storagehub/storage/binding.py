# storagehub/storage/binding.py
"""
Native binding protocol and a local filesystem binding.

A binding is a platform-supplied, credential-less handle to one physical
bucket. The protocol below mirrors the platform's bucket binding: put / get /
head / delete / list with cursor pagination. Anything satisfying it can be
handed to ProviderFactory.

LocalBinding implements the protocol on a directory. Useful for development
and testing without platform access. NOT for production use.
"""

import asyncio
import base64
import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Protocol, Union, runtime_checkable
from urllib.parse import quote, unquote

from storagehub.storage.streams import iter_body

logger = logging.getLogger(__name__)

BindingBody = Union[bytes, AsyncIterator[bytes]]


@dataclass
class BindingObject:
    """Object metadata as reported by a binding."""
    key: str
    size: int
    uploaded: datetime
    etag: Optional[str] = None
    content_type: Optional[str] = None
    custom_metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class BindingObjectBody(BindingObject):
    """Object metadata plus a body that streams its bytes."""
    body: Optional[AsyncIterator[bytes]] = None  # async-iterable; aclose() releases it


@dataclass
class BindingListing:
    objects: List[BindingObject]
    truncated: bool = False
    cursor: Optional[str] = None


@runtime_checkable
class ObjectStoreBinding(Protocol):
    """In-process handle to a native bucket."""

    async def put(
        self,
        key: str,
        body: BindingBody,
        *,
        content_type: Optional[str] = None,
        custom_metadata: Optional[Dict[str, str]] = None,
    ) -> BindingObject: ...

    async def get(self, key: str) -> Optional[BindingObjectBody]: ...

    async def head(self, key: str) -> Optional[BindingObject]: ...

    async def delete(self, key: str) -> None: ...

    async def list(
        self,
        *,
        prefix: Optional[str] = None,
        limit: int = 1000,
        cursor: Optional[str] = None,
    ) -> BindingListing: ...


def encode_cursor(key: str) -> str:
    return base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> str:
    try:
        return base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
    except (ValueError, UnicodeError):
        raise ValueError("Invalid list cursor") from None


class LocalBinding:
    """
    Filesystem-backed binding.

    Each object is one data file plus a JSON metadata sidecar. Keys are
    percent-encoded into flat file names so that "a" and "a/b" can coexist.
    Data files end in .obj and sidecars in .meta, so no key can collide with
    another key's sidecar.
    Every upload streams into its own temp file. The data file and sidecar
    are then renamed into place together under a lock, and readers take the
    same lock, so nobody sees a partial object or new data with old metadata.

    Configuration:
    - base_path: directory holding the bucket (default: ./storage/<bucket_name>)
    """

    def __init__(self, base_path: Union[str, Path, None] = None, bucket_name: str = "local"):
        self._base_path = Path(base_path or Path("./storage") / bucket_name)
        self._base_path.mkdir(parents=True, exist_ok=True)
        self._data_suffix = ".obj"
        self._metadata_suffix = ".meta"
        self._temp_suffix = ".upload"
        self._publish_lock = asyncio.Lock()
        self.bucket_name = bucket_name

        logger.info(f"Local binding initialized: {self._base_path}")

    def _get_path(self, key: str) -> Path:
        """Get filesystem path for key, with path traversal protection."""
        if not key:
            raise ValueError("Object key must not be empty")
        resolved = (self._base_path / (quote(key, safe="") + self._data_suffix)).resolve()
        if resolved.parent != self._base_path.resolve():
            raise ValueError("Path traversal detected")
        return resolved

    def _get_metadata_path(self, key: str) -> Path:
        """Get metadata file path for key, with path traversal protection."""
        path = self._get_path(key)
        return path.with_name(path.name[: -len(self._data_suffix)] + self._metadata_suffix)

    def _temp_file(self):
        return tempfile.NamedTemporaryFile(
            dir=self._base_path, prefix=".", suffix=self._temp_suffix, delete=False
        )

    def _load_metadata(self, key: str) -> Optional[BindingObject]:
        meta_path = self._get_metadata_path(key)
        if not meta_path.exists() or not self._get_path(key).exists():
            return None

        try:
            meta_dict = json.loads(meta_path.read_text())
            return BindingObject(
                key=meta_dict["key"],
                size=meta_dict["size"],
                uploaded=datetime.fromisoformat(meta_dict["uploaded"]),
                etag=meta_dict.get("etag"),
                content_type=meta_dict.get("content_type"),
                custom_metadata=meta_dict.get("custom_metadata", {}),
            )
        except (json.JSONDecodeError, KeyError) as e:
            logger.warning(f"Failed to load metadata for {key}: {e}")
            return None

    def _write_metadata_temp(self, obj: BindingObject) -> Path:
        meta_dict = {
            "key": obj.key,
            "size": obj.size,
            "uploaded": obj.uploaded.isoformat(),
            "etag": obj.etag,
            "content_type": obj.content_type,
            "custom_metadata": obj.custom_metadata,
        }
        with self._temp_file() as f:
            f.write(json.dumps(meta_dict, indent=2).encode("utf-8"))
        return Path(f.name)

    def _publish(self, key: str, data_tmp: Path, meta_tmp: Path) -> None:
        os.replace(data_tmp, self._get_path(key))
        os.replace(meta_tmp, self._get_metadata_path(key))

    async def put(
        self,
        key: str,
        body: BindingBody,
        *,
        content_type: Optional[str] = None,
        custom_metadata: Optional[Dict[str, str]] = None,
    ) -> BindingObject:
        """Write body to a private temp file chunk by chunk, then publish it atomically."""
        self._get_path(key)
        loop = asyncio.get_running_loop()

        digest = hashlib.md5(usedforsecurity=False)
        size = 0
        temp = await loop.run_in_executor(None, self._temp_file)
        data_tmp = Path(temp.name)
        meta_tmp: Optional[Path] = None
        try:
            with temp as f:
                if isinstance(body, (bytes, bytearray, memoryview)):
                    chunk = bytes(body)
                    digest.update(chunk)
                    size = len(chunk)
                    await loop.run_in_executor(None, f.write, chunk)
                else:
                    async for chunk in body:
                        digest.update(chunk)
                        size += len(chunk)
                        await loop.run_in_executor(None, f.write, chunk)

            obj = BindingObject(
                key=key,
                size=size,
                uploaded=datetime.now(UTC),
                etag=digest.hexdigest(),
                content_type=content_type,
                custom_metadata=dict(custom_metadata or {}),
            )
            meta_tmp = await loop.run_in_executor(None, self._write_metadata_temp, obj)

            async with self._publish_lock:
                await loop.run_in_executor(None, self._publish, key, data_tmp, meta_tmp)
        except BaseException:
            data_tmp.unlink(missing_ok=True)
            if meta_tmp is not None:
                meta_tmp.unlink(missing_ok=True)
            raise

        logger.debug(f"Wrote to local binding: {key} ({size} bytes)")
        return obj

    def _open(self, key: str) -> Optional[BindingObjectBody]:
        obj = self._load_metadata(key)
        if obj is None:
            return None
        try:
            f = open(self._get_path(key), "rb")
        except FileNotFoundError:
            return None
        return BindingObjectBody(
            key=obj.key,
            size=obj.size,
            uploaded=obj.uploaded,
            etag=obj.etag,
            content_type=obj.content_type,
            custom_metadata=obj.custom_metadata,
            body=iter_body(f),
        )

    async def get(self, key: str) -> Optional[BindingObjectBody]:
        """
        Metadata plus an open handle on the matching data file.

        The handle stays valid if the key is overwritten or deleted while the
        caller drains it; closing the body releases it.
        """
        loop = asyncio.get_running_loop()
        async with self._publish_lock:
            return await loop.run_in_executor(None, self._open, key)

    async def head(self, key: str) -> Optional[BindingObject]:
        loop = asyncio.get_running_loop()
        async with self._publish_lock:
            return await loop.run_in_executor(None, self._load_metadata, key)

    def _unlink(self, key: str) -> None:
        self._get_path(key).unlink(missing_ok=True)
        self._get_metadata_path(key).unlink(missing_ok=True)

    async def delete(self, key: str) -> None:
        loop = asyncio.get_running_loop()
        async with self._publish_lock:
            await loop.run_in_executor(None, self._unlink, key)

    def _all_keys(self) -> List[str]:
        keys = []
        for meta_file in self._base_path.glob(f"*{self._metadata_suffix}"):
            keys.append(unquote(meta_file.name[: -len(self._metadata_suffix)]))
        return sorted(keys)

    def _list_page(self, prefix: Optional[str], limit: int, after: Optional[str]) -> BindingListing:
        keys = self._all_keys()
        if prefix:
            keys = [k for k in keys if k.startswith(prefix)]
        if after is not None:
            keys = [k for k in keys if k > after]

        page = keys[:limit]
        objects = [obj for obj in (self._load_metadata(k) for k in page) if obj is not None]
        truncated = len(keys) > limit

        return BindingListing(
            objects=objects,
            truncated=truncated,
            cursor=encode_cursor(page[-1]) if truncated else None,
        )

    async def list(
        self,
        *,
        prefix: Optional[str] = None,
        limit: int = 1000,
        cursor: Optional[str] = None,
    ) -> BindingListing:
        """Lexicographic listing; the cursor encodes the last key returned."""
        after = decode_cursor(cursor) if cursor else None
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._list_page, prefix, limit, after)
