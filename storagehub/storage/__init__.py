# storagehub/storage/__init__.py
"""
Storage provider abstraction over heterogeneous object stores.

A logical bucket record selects one backend: the native blob store (through
its platform binding or its S3-compatible API) or any S3-compatible service.
Callers get a StorageProvider and never branch on which backend answers.
"""

from storagehub.storage.base import (
    BucketPurpose,
    ProviderType,
    StorageListOptions,
    StorageListResult,
    StorageObject,
    StorageProvider,
    StorageResponse,
    StorageUploadOptions,
)
from storagehub.storage.binding import LocalBinding, ObjectStoreBinding
from storagehub.storage.config import (
    CompatibleAPIConfig,
    NativeBindingConfig,
    StorageConfig,
    parse_storage_config,
)
from storagehub.storage.crypto import ConfigCipher
from storagehub.storage.errors import (
    BucketNotFoundError,
    ConfigurationError,
    DeleteError,
    DownloadError,
    ListError,
    ProbeError,
    StorageError,
    TransportError,
    UnsupportedOperationError,
    UnsupportedProviderError,
    UploadError,
)
from storagehub.storage.factory import ProviderFactory
from storagehub.storage.native_provider import NativeBindingProvider
from storagehub.storage.s3_provider import CompatibleAPIProvider

__all__ = [
    "StorageProvider",
    "StorageObject",
    "StorageResponse",
    "StorageUploadOptions",
    "StorageListOptions",
    "StorageListResult",
    "ProviderType",
    "BucketPurpose",
    "StorageConfig",
    "NativeBindingConfig",
    "CompatibleAPIConfig",
    "parse_storage_config",
    "ObjectStoreBinding",
    "LocalBinding",
    "ConfigCipher",
    "NativeBindingProvider",
    "CompatibleAPIProvider",
    "ProviderFactory",
    "StorageError",
    "ConfigurationError",
    "UnsupportedProviderError",
    "BucketNotFoundError",
    "UnsupportedOperationError",
    "TransportError",
    "UploadError",
    "DownloadError",
    "DeleteError",
    "ListError",
    "ProbeError",
]
