# storagehub/storage/factory.py
"""
Factory for creating storage providers from bucket records.
"""

import hashlib
import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

from cachetools import TTLCache
from pydantic import BaseModel

from storagehub.storage.base import DEFAULT_MAX_KEYS, BucketPurpose, StorageProvider
from storagehub.storage.binding import ObjectStoreBinding
from storagehub.storage.config import (
    CompatibleAPIConfig,
    NativeBindingConfig,
    StorageConfig,
    parse_storage_config,
    resolve_provider_type,
    resolve_purpose,
)
from storagehub.storage.crypto import ConfigCipher
from storagehub.storage.errors import BucketNotFoundError, ConfigurationError
from storagehub.storage.native_provider import (
    DEFAULT_ENDPOINT_TEMPLATE,
    DEFAULT_REGION,
    NativeBindingProvider,
)
from storagehub.storage.s3_provider import CompatibleAPIProvider

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from storagehub.models import StorageBucket
    from storagehub.registry import BucketRegistry

logger = logging.getLogger(__name__)


class ProviderFactory:
    """
    Resolves bucket records into StorageProvider instances.

    A new provider is built on every call: providers are request-scoped and
    never span buckets. Only the decrypted, validated config is cached, keyed
    by the bucket id and a digest of its stored blob, so an edited bucket is
    never served a stale config.

    Usage:
        factory = ProviderFactory.from_settings(db, bindings={"files": binding})
        provider = factory.get_provider(bucket_id)
        await provider.upload("a.txt", b"hello")
    """

    def __init__(
        self,
        registry: Optional["BucketRegistry"] = None,
        cipher: Optional[ConfigCipher] = None,
        bindings: Optional[Mapping[str, ObjectStoreBinding]] = None,
        *,
        native_endpoint_template: str = DEFAULT_ENDPOINT_TEMPLATE,
        native_region: str = DEFAULT_REGION,
        connect_timeout: float = 5,
        read_timeout: float = 30,
        max_keys_limit: int = DEFAULT_MAX_KEYS,
        config_cache_ttl: int = 300,
        config_cache_size: int = 256,
    ):
        """
        Args:
            registry: Bucket registry for id/purpose lookups
            cipher: Config cipher; required to read or write config_json
            bindings: Platform bindings keyed by physical bucket name
            native_endpoint_template: S3 endpoint of the native store in credential mode
            native_region: Region sentinel of the native store in credential mode
            connect_timeout: S3 client connect timeout (seconds)
            read_timeout: S3 client read timeout (seconds)
            max_keys_limit: Default and upper bound for list page size
            config_cache_ttl: Seconds a parsed config stays cached (0 disables)
            config_cache_size: Maximum cached configs
        """
        self.registry = registry
        self._cipher = cipher
        self._bindings: Dict[str, ObjectStoreBinding] = dict(bindings or {})
        self._native_endpoint_template = native_endpoint_template
        self._native_region = native_region
        self._connect_timeout = connect_timeout
        self._read_timeout = read_timeout
        self._max_keys_limit = max_keys_limit

        self._config_cache: Optional[TTLCache] = None
        if config_cache_ttl > 0:
            self._config_cache = TTLCache(maxsize=config_cache_size, ttl=config_cache_ttl)
        self._cache_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        db: Optional["Session"] = None,
        bindings: Optional[Mapping[str, ObjectStoreBinding]] = None,
        settings: Optional[Any] = None,
    ) -> "ProviderFactory":
        """Build a factory wired to the application settings and a DB session."""
        from storagehub.registry import BucketRegistry

        if settings is None:
            from storagehub.config import get_settings
            settings = get_settings()

        return cls(
            registry=BucketRegistry(db) if db is not None else None,
            cipher=ConfigCipher.from_settings(settings),
            bindings=bindings,
            native_endpoint_template=settings.NATIVE_ENDPOINT_TEMPLATE,
            native_region=settings.NATIVE_REGION,
            connect_timeout=settings.S3_CONNECT_TIMEOUT,
            read_timeout=settings.S3_READ_TIMEOUT,
            max_keys_limit=settings.STORAGE_LIST_MAX_KEYS,
            config_cache_ttl=settings.STORAGE_CONFIG_CACHE_TTL,
            config_cache_size=settings.STORAGE_CONFIG_CACHE_SIZE,
        )

    @property
    def cipher(self) -> ConfigCipher:
        if self._cipher is None:
            raise ConfigurationError("No config cipher configured; cannot read or write bucket configs")
        return self._cipher

    def register_binding(self, bucket_name: str, binding: ObjectStoreBinding) -> None:
        """Make a platform binding available to native buckets named `bucket_name`."""
        self._bindings[bucket_name] = binding

    # -------------------------------------------------------------------------
    # Config serialization boundary
    # -------------------------------------------------------------------------

    def encrypt_config(self, config: Union[StorageConfig, Mapping[str, Any]]) -> str:
        """Serialize and encrypt a config for storage_buckets.config_json."""
        if isinstance(config, BaseModel):
            raw = config.model_dump(exclude_none=True)
        else:
            raw = dict(config)
        return self.cipher.encrypt(raw)

    def decrypt_config(self, blob: str) -> Dict[str, Any]:
        return self.cipher.decrypt(blob)

    def load_config(self, bucket: "StorageBucket") -> StorageConfig:
        """
        Decrypt and validate a bucket's config.

        Raises:
            UnsupportedProviderError: unknown provider discriminator
            ConfigurationError: config cannot be decrypted or is invalid
        """
        provider_type = resolve_provider_type(bucket.provider)
        digest = hashlib.sha256((bucket.config_json or "").encode("utf-8")).hexdigest()
        cache_key = (bucket.id, provider_type.value, digest)

        if self._config_cache is not None:
            with self._cache_lock:
                cached = self._config_cache.get(cache_key)
            if cached is not None:
                return cached

        if not bucket.config_json:
            raise ConfigurationError(f"Bucket {bucket.id} has no stored config")

        config = parse_storage_config(provider_type, self.decrypt_config(bucket.config_json))

        if self._config_cache is not None:
            with self._cache_lock:
                self._config_cache[cache_key] = config
        return config

    def clear_cache(self) -> None:
        if self._config_cache is not None:
            with self._cache_lock:
                self._config_cache.clear()

    # -------------------------------------------------------------------------
    # Provider construction
    # -------------------------------------------------------------------------

    def create_provider(self, bucket: "StorageBucket") -> StorageProvider:
        """
        Build the provider matching the bucket's declared type.

        Raises:
            UnsupportedProviderError: unknown provider discriminator
            ConfigurationError: config is invalid
        """
        config = self.load_config(bucket)

        if isinstance(config, NativeBindingConfig):
            provider: StorageProvider = self._create_native_provider(config)
        elif isinstance(config, CompatibleAPIConfig):
            provider = self._create_compatible_provider(config)
        else:  # pragma: no cover - parse_storage_config only returns the two variants
            raise ConfigurationError(f"Unexpected config type for bucket {bucket.id}")

        logger.debug(f"Storage provider created for bucket {bucket.id}: {provider.name}")
        return provider

    def _create_native_provider(self, config: NativeBindingConfig) -> NativeBindingProvider:
        binding = self._bindings.get(config.bucket_name) if config.use_binding else None
        return NativeBindingProvider(
            config,
            binding,
            endpoint_template=self._native_endpoint_template,
            region=self._native_region,
            max_keys_limit=self._max_keys_limit,
            connect_timeout=self._connect_timeout,
            read_timeout=self._read_timeout,
        )

    def _create_compatible_provider(self, config: CompatibleAPIConfig) -> CompatibleAPIProvider:
        return CompatibleAPIProvider(
            config,
            connect_timeout=self._connect_timeout,
            read_timeout=self._read_timeout,
            max_keys_limit=self._max_keys_limit,
        )

    # -------------------------------------------------------------------------
    # Registry read-through
    # -------------------------------------------------------------------------

    def _require_registry(self) -> "BucketRegistry":
        if self.registry is None:
            raise ConfigurationError("No bucket registry configured")
        return self.registry

    def get_bucket(self, bucket_id: str) -> Optional["StorageBucket"]:
        return self._require_registry().get_bucket(bucket_id)

    def get_default_bucket(
        self, purpose: Union[str, BucketPurpose] = BucketPurpose.GENERAL
    ) -> Optional["StorageBucket"]:
        return self._require_registry().get_default_bucket(purpose)

    def list_buckets(self) -> List["StorageBucket"]:
        return self._require_registry().list_buckets()

    def get_provider(self, bucket_id: str) -> StorageProvider:
        """
        Raises:
            BucketNotFoundError: no bucket with this id
        """
        bucket = self.get_bucket(bucket_id)
        if bucket is None:
            raise BucketNotFoundError(f"Storage bucket not found: {bucket_id}")
        return self.create_provider(bucket)

    def get_default_provider(self, purpose: Union[str, BucketPurpose] = BucketPurpose.GENERAL) -> StorageProvider:
        """
        Raises:
            BucketNotFoundError: no bucket holds the default flag for `purpose`
            ConfigurationError: `purpose` is not a known bucket purpose
        """
        purpose = resolve_purpose(purpose)
        bucket = self.get_default_bucket(purpose)
        if bucket is None:
            raise BucketNotFoundError(f"No default storage bucket for purpose: {purpose.value}")
        return self.create_provider(bucket)

    async def test_bucket(self, bucket_id: str) -> bool:
        """
        Connection test for a bucket record.

        Configuration problems count as a failed test, not an exception.
        Raises BucketNotFoundError only when the bucket does not exist.
        """
        bucket = self.get_bucket(bucket_id)
        if bucket is None:
            raise BucketNotFoundError(f"Storage bucket not found: {bucket_id}")
        try:
            provider = self.create_provider(bucket)
        except ConfigurationError as e:
            logger.warning(f"Bucket {bucket_id} failed configuration check: {e}")
            return False
        return await provider.test_connection()
