# storagehub/storage/s3_provider.py
"""
S3-compatible storage provider implementation using boto3.

Supports:
- AWS S3
- S3-compatible services (MinIO, Backblaze B2, DigitalOcean Spaces, etc.)
- The native blob store's own S3 API, when its binding is not used

boto3 is synchronous: every client call runs in the default executor so the
event loop stays free and callers can cancel the await.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Optional, Type

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from storagehub.logging_config import log_storage_operation
from storagehub.storage.base import (
    DEFAULT_MAX_KEYS,
    ProviderType,
    StorageListOptions,
    StorageListResult,
    StorageObject,
    StorageProvider,
    StorageResponse,
    StorageUploadOptions,
)
from storagehub.storage.config import CompatibleAPIConfig
from storagehub.storage.errors import (
    DeleteError,
    DownloadError,
    ListError,
    ProbeError,
    TransportError,
    UploadError,
)
from storagehub.storage.streams import UploadData, iter_body, read_upload_body

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


def _status_code(e: ClientError) -> Optional[int]:
    return e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def is_not_found(e: ClientError) -> bool:
    """True for a missing key, whether reported as an error code or a bare 404."""
    code = _error_code(e)
    if code in NOT_FOUND_CODES:
        return True
    return _status_code(e) == 404 and code != "NoSuchBucket"


def to_transport_error(error_cls: Type[TransportError], key: Optional[str], e: Exception) -> TransportError:
    """
    Map a boto3 failure onto the storage error taxonomy.

    Backend code/status/message are preserved. Connection-level errors keep
    only their class name: their text embeds the endpoint URL.
    """
    if isinstance(e, ClientError):
        return error_cls(
            key,
            status_code=_status_code(e),
            code=_error_code(e) or None,
            message=e.response.get("Error", {}).get("Message"),
        )
    return error_cls(key, code=type(e).__name__)


def body_read_error(key: str, e: Exception) -> Optional[TransportError]:
    """Map a failure while streaming a GET body; class name only, as for connection errors."""
    if isinstance(e, (BotoCoreError, OSError)):
        return DownloadError(key, code=type(e).__name__)
    return None


def strip_etag(etag: Optional[str]) -> Optional[str]:
    return etag.strip('"') if etag else etag


class CompatibleAPIProvider(StorageProvider):
    """
    S3/S3-compatible storage provider.

    Configuration comes from the bucket's CompatibleAPIConfig:
    - bucket_name, region, access_key_id, secret_access_key
    - endpoint: Custom endpoint for S3-compatible services
    - force_path_style: Path-style addressing (implied by a custom endpoint)

    Not retried here: retry policy belongs to the caller. Uploads are single
    PUTs of a fully buffered body; there is no multipart path, so very large
    objects are bounded by memory and the backend's single-PUT limit.
    """

    def __init__(
        self,
        config: CompatibleAPIConfig,
        *,
        client: Any = None,
        connect_timeout: float = 5,
        read_timeout: float = 30,
        max_keys_limit: int = DEFAULT_MAX_KEYS,
        provider_name: str = ProviderType.COMPATIBLE.value,
    ):
        """
        Initialize S3 provider.

        Args:
            config: Validated connection config for one bucket
            client: Pre-built boto3 S3 client (tests)
            connect_timeout: Seconds to establish a connection
            read_timeout: Seconds to wait on a socket read
            max_keys_limit: Default and upper bound for list page size
            provider_name: Reported name; "native" when delegated to
        """
        self._config = config
        self._max_keys_limit = max_keys_limit
        self._name = provider_name

        if client is None:
            boto_config = Config(
                signature_version="s3v4",
                s3={"addressing_style": "path" if config.use_path_style else "virtual"},
                retries={"max_attempts": 1, "mode": "standard"},
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
            )
            # Own session per provider: buckets never share credentials
            session = boto3.session.Session()
            client = session.client(
                "s3",
                endpoint_url=config.endpoint,
                region_name=config.region,
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key,
                config=boto_config,
            )
        self._client = client

        logger.info(f"S3-compatible storage initialized: bucket={config.bucket_name}")

    @property
    def name(self) -> str:
        return self._name

    @property
    def bucket_name(self) -> str:
        return self._config.bucket_name

    @property
    def config(self) -> CompatibleAPIConfig:
        return self._config

    async def _call(self, method: str, **params: Any) -> Any:
        loop = asyncio.get_running_loop()
        func = getattr(self._client, method)
        return await loop.run_in_executor(None, lambda: func(**params))

    async def upload(
        self,
        key: str,
        data: UploadData,
        options: Optional[StorageUploadOptions] = None,
    ) -> None:
        """Buffer the input and PUT it in one request."""
        options = options or StorageUploadOptions()

        with log_storage_operation("upload", key, self.name, self.bucket_name) as metrics:
            body = await read_upload_body(data)
            metrics["size_bytes"] = len(body)

            params = {"Bucket": self.bucket_name, "Key": key, "Body": body}
            if options.content_type:
                params["ContentType"] = options.content_type
            if options.metadata:
                params["Metadata"] = dict(options.metadata)

            try:
                await self._call("put_object", **params)
            except (ClientError, BotoCoreError) as e:
                raise to_transport_error(UploadError, key, e) from e

    async def download(self, key: str) -> StorageResponse:
        """Open the object; the body streams from the SDK response."""
        with log_storage_operation("download", key, self.name, self.bucket_name) as metrics:
            try:
                response = await self._call("get_object", Bucket=self.bucket_name, Key=key)
            except ClientError as e:
                if is_not_found(e):
                    logger.debug(f"S3 object not found: {key}")
                    return StorageResponse.not_found_response()
                raise to_transport_error(DownloadError, key, e) from e
            except BotoCoreError as e:
                raise to_transport_error(DownloadError, key, e) from e

            metrics["size_bytes"] = response.get("ContentLength")
            return StorageResponse(
                iter_body(response.get("Body"), error_mapper=lambda e: body_read_error(key, e)),
                content_type=response.get("ContentType"),
                content_length=response.get("ContentLength"),
                etag=response.get("ETag"),
                last_modified=response.get("LastModified"),
                metadata=response.get("Metadata", {}),
            )

    async def delete(self, key: str) -> None:
        """Delete object from S3. An absent key is not an error."""
        with log_storage_operation("delete", key, self.name, self.bucket_name):
            try:
                await self._call("delete_object", Bucket=self.bucket_name, Key=key)
            except ClientError as e:
                if is_not_found(e):
                    logger.debug(f"S3 delete of absent key: {key}")
                    return
                raise to_transport_error(DeleteError, key, e) from e
            except BotoCoreError as e:
                raise to_transport_error(DeleteError, key, e) from e

    async def exists(self, key: str) -> bool:
        """HEAD the object. Only "not found" maps to False; other failures raise."""
        try:
            await self._call("head_object", Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            if is_not_found(e):
                return False
            raise to_transport_error(ProbeError, key, e) from e
        except BotoCoreError as e:
            raise to_transport_error(ProbeError, key, e) from e

    async def list(self, options: Optional[StorageListOptions] = None) -> StorageListResult:
        """One ListObjectsV2 page; prefix and token are forwarded verbatim."""
        options = options or StorageListOptions()
        params = {
            "Bucket": self.bucket_name,
            "MaxKeys": options.effective_max_keys(self._max_keys_limit),
        }
        if options.prefix:
            params["Prefix"] = options.prefix
        if options.continuation_token:
            params["ContinuationToken"] = options.continuation_token

        with log_storage_operation("list", options.prefix, self.name, self.bucket_name):
            try:
                response = await self._call("list_objects_v2", **params)
            except (ClientError, BotoCoreError) as e:
                raise to_transport_error(ListError, options.prefix, e) from e

        objects = [
            StorageObject(
                key=item["Key"],
                size=item.get("Size", 0),
                last_modified=item.get("LastModified") or datetime.now(UTC),
                etag=strip_etag(item.get("ETag")),
            )
            for item in response.get("Contents", [])
        ]

        return StorageListResult(
            objects=objects,
            is_truncated=bool(response.get("IsTruncated", False)),
            continuation_token=response.get("NextContinuationToken"),
        )

    async def get_signed_url(self, key: str, expires_in: int = 3600) -> str:
        """Presigned GET URL. Signed locally, no request is made."""
        return self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket_name, "Key": key},
            ExpiresIn=expires_in,
        )
