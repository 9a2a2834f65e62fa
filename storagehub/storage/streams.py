# storagehub/storage/streams.py
"""
Byte stream normalisation shared by all providers.

Uploads accept three input shapes and reduce them to async byte chunks:
- buffer: bytes, bytearray, memoryview (str is encoded as UTF-8)
- readable stream: file-like with sync or async read(), or an iterable /
  async iterable of byte chunks
- blob handle: an os.PathLike pointing at a file

Downloads go the other way: whatever body object the backend SDK hands back is
adapted into one async iterator of byte chunks, whatever its shape.
"""

import asyncio
import inspect
import os
from typing import Any, AsyncIterable, AsyncIterator, BinaryIO, Callable, Iterable, Iterator, Optional, Union

DEFAULT_CHUNK_SIZE = 64 * 1024

UploadData = Union[
    bytes,
    bytearray,
    memoryview,
    str,
    "os.PathLike[str]",
    BinaryIO,
    AsyncIterable[bytes],
    Iterable[bytes],
]

_BUFFER_TYPES = (bytes, bytearray, memoryview)
_END = object()


def is_buffer(data: Any) -> bool:
    return isinstance(data, (*_BUFFER_TYPES, str))


def as_bytes(data: Any) -> bytes:
    """Coerce a buffer-shaped value to bytes."""
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


async def _iter_sync(iterator: Iterator[Any]) -> AsyncIterator[Any]:
    """Step a blocking iterator in the default executor."""
    loop = asyncio.get_running_loop()
    while True:
        item = await loop.run_in_executor(None, next, iterator, _END)
        if item is _END:
            return
        yield item


async def _iter_read(stream: Any, chunk_size: int) -> AsyncIterator[bytes]:
    """Read a file-like object to EOF, one chunk at a time."""
    loop = asyncio.get_running_loop()
    read_is_async = inspect.iscoroutinefunction(stream.read)
    while True:
        if read_is_async:
            chunk = await stream.read(chunk_size)
        else:
            chunk = await loop.run_in_executor(None, stream.read, chunk_size)
            if inspect.isawaitable(chunk):
                chunk = await chunk
        if not chunk:
            return
        yield as_bytes(chunk)


async def iter_file(path: Union[str, "os.PathLike[str]"], chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Stream a file from disk without reading it whole."""
    with open(path, "rb") as f:
        async for chunk in _iter_read(f, chunk_size):
            yield chunk


async def iter_upload_chunks(data: UploadData, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """
    Normalise upload input into async byte chunks without buffering streams.

    Raises:
        TypeError: input is none of the supported shapes
    """
    if is_buffer(data):
        yield as_bytes(data)
    elif isinstance(data, os.PathLike):
        async for chunk in iter_file(data, chunk_size):
            yield chunk
    elif hasattr(data, "read"):
        async for chunk in _iter_read(data, chunk_size):
            yield chunk
    elif hasattr(data, "__aiter__"):
        async for chunk in data:
            if chunk:
                yield as_bytes(chunk)
    elif hasattr(data, "__iter__"):
        async for chunk in _iter_sync(iter(data)):
            if chunk:
                yield as_bytes(chunk)
    else:
        raise TypeError(f"Unsupported upload data type: {type(data).__name__}")


async def read_upload_body(data: UploadData) -> bytes:
    """
    Collect upload input into a single buffer.

    Streams are drained fully into memory. There is no size cap here: the
    surrounding request limits apply.
    """
    if is_buffer(data):
        return as_bytes(data)
    chunks = [chunk async for chunk in iter_upload_chunks(data)]
    return b"".join(chunks)


ErrorMapper = Callable[[Exception], Optional[Exception]]


async def _adapt_body(body: Any, chunk_size: int) -> AsyncIterator[bytes]:
    if body is None:
        return
    if is_buffer(body):
        yield as_bytes(body)
    elif hasattr(body, "iter_chunks"):
        chunks = body.iter_chunks(chunk_size)
        if hasattr(chunks, "__aiter__"):
            async for chunk in chunks:
                if chunk:
                    yield bytes(chunk)
        else:
            async for chunk in _iter_sync(iter(chunks)):
                if chunk:
                    yield bytes(chunk)
    elif hasattr(body, "read"):
        async for chunk in _iter_read(body, chunk_size):
            yield chunk
    elif hasattr(body, "__aiter__"):
        async for chunk in body:
            if chunk:
                yield bytes(chunk)
    else:
        raise TypeError(f"Unsupported response body type: {type(body).__name__}")


async def _close_source(body: Any) -> None:
    close = getattr(body, "close", None) or getattr(body, "aclose", None)
    if close is not None:
        result = close()
        if inspect.isawaitable(result):
            await result


class BodyStream:
    """
    Async byte iterator over a backend response body.

    Owns the source body: aclose() releases it whether or not iteration ever
    started, and draining to the end closes it too. Errors raised while
    reading go through `error_mapper`; a non-None result is raised in place
    of the original.
    """

    def __init__(self, body: Any, chunk_size: int = DEFAULT_CHUNK_SIZE, error_mapper: Optional[ErrorMapper] = None):
        self._source = body
        self._chunks = _adapt_body(body, chunk_size)
        self._error_mapper = error_mapper
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "BodyStream":
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            await self.aclose()
            raise
        except Exception as e:
            await self.aclose()
            mapped = self._error_mapper(e) if self._error_mapper is not None else None
            if mapped is None:
                raise
            raise mapped from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._chunks.aclose()
        finally:
            await _close_source(self._source)


def iter_body(
    body: Any,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    error_mapper: Optional[ErrorMapper] = None,
) -> BodyStream:
    """
    Adapt a backend response body into async byte chunks.

    Shapes are probed in order:
    1. SDK conversion method: iter_chunks() (botocore and aiobotocore bodies)
    2. standard readable stream: read(), sync or async
    3. async iterable of byte chunks
    Plain buffers are yielded as a single chunk. The body is closed once
    drained, on a read error, or when the stream is closed unread.
    """
    return BodyStream(body, chunk_size, error_mapper)
