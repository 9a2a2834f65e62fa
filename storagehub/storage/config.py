# storagehub/storage/config.py
"""
Per-bucket connection configuration.

Exactly one variant is active per bucket. The variant is chosen by the
bucket's declared provider type, never guessed from which fields are set.
"""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from storagehub.storage.base import BucketPurpose, ProviderType
from storagehub.storage.errors import ConfigurationError, UnsupportedProviderError


class NativeBindingConfig(BaseModel):
    """Native blob store: platform binding, or its S3-compatible API with credentials."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    bucket_name: str = Field(..., min_length=1)
    use_binding: bool = Field(
        default=False,
        description="Route through the platform binding instead of the S3-compatible API",
    )
    account_id: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None

    @model_validator(mode="after")
    def require_credentials_without_binding(self) -> "NativeBindingConfig":
        if not self.use_binding:
            missing = [
                name
                for name in ("account_id", "access_key_id", "secret_access_key")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(
                    f"credential mode requires {', '.join(missing)}; "
                    "set them or enable use_binding"
                )
        return self


class CompatibleAPIConfig(BaseModel):
    """Any S3-compatible service reached with an access key / secret pair."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    bucket_name: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)
    access_key_id: str = Field(..., min_length=1)
    secret_access_key: str = Field(..., min_length=1)
    endpoint: Optional[str] = Field(
        default=None,
        description="Custom endpoint for S3-compatible services (MinIO, B2, ...)",
    )
    force_path_style: bool = False

    @property
    def use_path_style(self) -> bool:
        """Custom endpoints are addressed path-style unless told otherwise."""
        return self.force_path_style or bool(self.endpoint)


StorageConfig = Union[NativeBindingConfig, CompatibleAPIConfig]

_CONFIG_TYPES = {
    ProviderType.NATIVE: NativeBindingConfig,
    ProviderType.COMPATIBLE: CompatibleAPIConfig,
}


def resolve_provider_type(provider: Union[str, ProviderType]) -> ProviderType:
    try:
        return ProviderType(provider)
    except ValueError:
        raise UnsupportedProviderError(str(provider)) from None


def resolve_purpose(purpose: Union[str, BucketPurpose]) -> BucketPurpose:
    try:
        return BucketPurpose(purpose)
    except ValueError:
        raise ConfigurationError(
            f"Unknown bucket purpose: {purpose!r}. Available: general, chat, forms"
        ) from None


def parse_storage_config(provider: Union[str, ProviderType], raw: Dict[str, Any]) -> StorageConfig:
    """
    Validate a decrypted config dict against the variant for `provider`.

    Raises:
        UnsupportedProviderError: unknown provider discriminator
        ConfigurationError: config is missing required fields
    """
    provider_type = resolve_provider_type(provider)
    config_cls = _CONFIG_TYPES[provider_type]
    try:
        return config_cls.model_validate(raw)
    except ValidationError as e:
        # Field names only: input values may hold secrets
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors(include_input=False)
        )
        raise ConfigurationError(f"Invalid {provider_type.value} storage config: {problems}") from None
