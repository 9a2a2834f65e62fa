# storagehub/storage/native_provider.py
"""
Native blob store provider.

One capability, two transports, chosen once at construction:

    use_binding + binding handle  -> bound: calls go through the binding
    use_binding, no binding       -> every call raises ConfigurationError
    use_binding disabled          -> delegates to CompatibleAPIProvider against
                                     the store's S3-compatible endpoint

Callers see the same StorageProvider surface and error taxonomy in all three.
"""

import logging
from contextlib import contextmanager
from typing import Any, Optional, Type

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
from storagehub.storage.binding import ObjectStoreBinding
from storagehub.storage.config import CompatibleAPIConfig, NativeBindingConfig
from storagehub.storage.errors import (
    ConfigurationError,
    DeleteError,
    DownloadError,
    ListError,
    ProbeError,
    StorageError,
    TransportError,
    UploadError,
)
from storagehub.storage.s3_provider import CompatibleAPIProvider
from storagehub.storage.streams import UploadData, as_bytes, is_buffer, iter_body, iter_upload_chunks

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT_TEMPLATE = "https://{account_id}.r2.cloudflarestorage.com"
DEFAULT_REGION = "auto"


def to_binding_error(error_cls: Type[TransportError], key: Optional[str], e: Exception) -> Optional[TransportError]:
    """
    Map a platform binding failure onto the storage error taxonomy.

    Storage errors and unsupported-input TypeErrors pass through (None).
    OSError text carries filesystem paths, so only its class name is kept.
    """
    if isinstance(e, (StorageError, TypeError)):
        return None
    if isinstance(e, OSError):
        return error_cls(key, code=type(e).__name__)
    return error_cls(key, code=type(e).__name__, message=str(e))


@contextmanager
def binding_errors(error_cls: Type[TransportError], key: Optional[str]):
    """Re-raise platform binding failures as transport errors."""
    try:
        yield
    except Exception as e:
        mapped = to_binding_error(error_cls, key, e)
        if mapped is None:
            raise
        raise mapped from e


def credential_mode_config(
    config: NativeBindingConfig,
    endpoint_template: str = DEFAULT_ENDPOINT_TEMPLATE,
    region: str = DEFAULT_REGION,
) -> CompatibleAPIConfig:
    """S3-compatible config for the native store's public API."""
    if not (config.account_id and config.access_key_id and config.secret_access_key):
        raise ConfigurationError(
            f"Bucket '{config.bucket_name}' has binding disabled but is missing "
            "account_id, access_key_id or secret_access_key"
        )
    return CompatibleAPIConfig(
        bucket_name=config.bucket_name,
        region=region,
        access_key_id=config.access_key_id,
        secret_access_key=config.secret_access_key,
        endpoint=endpoint_template.format(account_id=config.account_id),
        force_path_style=True,
    )


class BindingTransport(StorageProvider):
    """StorageProvider over a platform binding. No signing: the binding authenticates."""

    def __init__(self, bucket_name: str, binding: ObjectStoreBinding, max_keys_limit: int = DEFAULT_MAX_KEYS):
        self._bucket_name = bucket_name
        self._binding = binding
        self._max_keys_limit = max_keys_limit

    @property
    def name(self) -> str:
        return ProviderType.NATIVE.value

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    async def upload(
        self,
        key: str,
        data: UploadData,
        options: Optional[StorageUploadOptions] = None,
    ) -> None:
        """Hand the binding a buffer as-is and streams chunk by chunk."""
        options = options or StorageUploadOptions()
        body = as_bytes(data) if is_buffer(data) else iter_upload_chunks(data)

        with log_storage_operation("upload", key, self.name, self.bucket_name) as metrics:
            with binding_errors(UploadError, key):
                obj = await self._binding.put(
                    key,
                    body,
                    content_type=options.content_type,
                    custom_metadata=options.metadata,
                )
            metrics["size_bytes"] = getattr(obj, "size", None)

    async def download(self, key: str) -> StorageResponse:
        with log_storage_operation("download", key, self.name, self.bucket_name) as metrics:
            with binding_errors(DownloadError, key):
                obj = await self._binding.get(key)
            if obj is None:
                return StorageResponse.not_found_response()

            metrics["size_bytes"] = obj.size
            return StorageResponse(
                iter_body(obj.body, error_mapper=lambda e: to_binding_error(DownloadError, key, e)),
                content_type=obj.content_type,
                content_length=obj.size,
                etag=f'"{obj.etag}"' if obj.etag else None,
                last_modified=obj.uploaded,
                metadata=obj.custom_metadata,
            )

    async def delete(self, key: str) -> None:
        with log_storage_operation("delete", key, self.name, self.bucket_name):
            with binding_errors(DeleteError, key):
                await self._binding.delete(key)

    async def exists(self, key: str) -> bool:
        with binding_errors(ProbeError, key):
            return await self._binding.head(key) is not None

    async def list(self, options: Optional[StorageListOptions] = None) -> StorageListResult:
        options = options or StorageListOptions()

        with log_storage_operation("list", options.prefix, self.name, self.bucket_name):
            with binding_errors(ListError, options.prefix):
                listing = await self._binding.list(
                    prefix=options.prefix,
                    limit=options.effective_max_keys(self._max_keys_limit),
                    cursor=options.continuation_token,
                )

        objects = [
            StorageObject(
                key=obj.key,
                size=obj.size,
                last_modified=obj.uploaded,
                etag=obj.etag,
                metadata=dict(obj.custom_metadata or {}),
            )
            for obj in listing.objects
        ]
        return StorageListResult(
            objects=objects,
            is_truncated=listing.truncated,
            continuation_token=listing.cursor if listing.truncated else None,
        )


class UnavailableBinding(StorageProvider):
    """Binding mode was requested but no binding exists. Fails closed on every call."""

    def __init__(self, bucket_name: str):
        self._bucket_name = bucket_name

    @property
    def name(self) -> str:
        return ProviderType.NATIVE.value

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    def _fail(self) -> ConfigurationError:
        return ConfigurationError(
            f"Bucket '{self._bucket_name}' is configured for native binding mode but no "
            "binding is available. Supply the binding for this bucket, or set use_binding "
            "to false and provide account_id, access_key_id and secret_access_key."
        )

    async def upload(self, key: str, data: UploadData, options: Optional[StorageUploadOptions] = None) -> None:
        raise self._fail()

    async def download(self, key: str) -> StorageResponse:
        raise self._fail()

    async def delete(self, key: str) -> None:
        raise self._fail()

    async def exists(self, key: str) -> bool:
        raise self._fail()

    async def list(self, options: Optional[StorageListOptions] = None) -> StorageListResult:
        raise self._fail()

    async def get_signed_url(self, key: str, expires_in: int = 3600) -> str:
        raise self._fail()


class NativeBindingProvider(StorageProvider):
    """
    Native blob store provider.

    Configuration comes from the bucket's NativeBindingConfig. The transport
    is picked once here and every method forwards to it.
    """

    def __init__(
        self,
        config: NativeBindingConfig,
        binding: Optional[ObjectStoreBinding] = None,
        *,
        endpoint_template: str = DEFAULT_ENDPOINT_TEMPLATE,
        region: str = DEFAULT_REGION,
        max_keys_limit: int = DEFAULT_MAX_KEYS,
        **s3_options: Any,
    ):
        """
        Args:
            config: Validated native config for one bucket
            binding: Platform binding for this bucket, if the runtime has one
            endpoint_template: S3 endpoint of the store, {account_id} substituted
            region: Region sentinel for credential mode
            max_keys_limit: Default and upper bound for list page size
            **s3_options: Passed to CompatibleAPIProvider in credential mode
        """
        self._config = config

        if config.use_binding and binding is not None:
            self._transport: StorageProvider = BindingTransport(config.bucket_name, binding, max_keys_limit)
            self._mode = "binding"
        elif config.use_binding:
            self._transport = UnavailableBinding(config.bucket_name)
            self._mode = "binding-unavailable"
            logger.warning(f"No binding available for native bucket {config.bucket_name}; operations will fail")
        else:
            self._transport = CompatibleAPIProvider(
                credential_mode_config(config, endpoint_template, region),
                max_keys_limit=max_keys_limit,
                provider_name=ProviderType.NATIVE.value,
                **s3_options,
            )
            self._mode = "credential"

        logger.info(f"Native storage initialized: bucket={config.bucket_name} mode={self._mode}")

    @property
    def name(self) -> str:
        return ProviderType.NATIVE.value

    @property
    def bucket_name(self) -> str:
        return self._config.bucket_name

    @property
    def mode(self) -> str:
        """'binding', 'binding-unavailable' or 'credential'."""
        return self._mode

    async def upload(
        self,
        key: str,
        data: UploadData,
        options: Optional[StorageUploadOptions] = None,
    ) -> None:
        await self._transport.upload(key, data, options)

    async def download(self, key: str) -> StorageResponse:
        return await self._transport.download(key)

    async def delete(self, key: str) -> None:
        await self._transport.delete(key)

    async def exists(self, key: str) -> bool:
        return await self._transport.exists(key)

    async def list(self, options: Optional[StorageListOptions] = None) -> StorageListResult:
        return await self._transport.list(options)

    async def get_signed_url(self, key: str, expires_in: int = 3600) -> str:
        return await self._transport.get_signed_url(key, expires_in)

    async def test_connection(self) -> bool:
        return await self._transport.test_connection()
