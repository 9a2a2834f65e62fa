# storagehub/storage/crypto.py
"""
Encryption at rest for bucket connection configs.

Configs carry access keys, so the serialized form stored in
storage_buckets.config_json is a Fernet token (AES-128-CBC + HMAC-SHA256),
never plain JSON.

Key management:
- Keys come from settings (STORAGE_CONFIG_KEYS), comma-separated
- The first key encrypts; every key is tried for decryption (rotation)
- Only ProviderFactory holds a ConfigCipher; the registry sees ciphertext only
"""

import json
import logging
from typing import Any, Dict, Optional, Sequence

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from storagehub.storage.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ConfigCipher:
    """Encrypts and decrypts bucket configs."""

    def __init__(self, keys: Sequence[str | bytes], allow_plaintext: bool = False):
        """
        Args:
            keys: Fernet keys, newest first
            allow_plaintext: Accept legacy rows that stored config as plain JSON
        """
        if not keys:
            raise ConfigurationError(
                "No storage config encryption key configured. Set STORAGE_CONFIG_KEYS."
            )
        try:
            self._fernet = MultiFernet([Fernet(k) for k in keys])
        except ValueError:
            raise ConfigurationError("STORAGE_CONFIG_KEYS contains an invalid Fernet key") from None
        self._allow_plaintext = allow_plaintext

    @classmethod
    def from_settings(cls, settings: Optional[Any] = None) -> "ConfigCipher":
        if settings is None:
            from storagehub.config import get_settings
            settings = get_settings()
        return cls(settings.storage_config_keys, allow_plaintext=settings.STORAGE_ALLOW_PLAINTEXT_CONFIG)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("ascii")

    def encrypt(self, config: Dict[str, Any]) -> str:
        payload = json.dumps(config, separators=(",", ":"), sort_keys=True).encode("utf-8")
        return self._fernet.encrypt(payload).decode("ascii")

    def decrypt(self, blob: str) -> Dict[str, Any]:
        """
        Raises:
            ConfigurationError: blob is not a token for any configured key
        """
        try:
            payload = self._fernet.decrypt(blob.encode("utf-8"))
        except InvalidToken:
            return self._decrypt_legacy(blob)
        return json.loads(payload)

    def rotate(self, blob: str) -> str:
        """Re-encrypt a token under the newest key."""
        try:
            return self._fernet.rotate(blob.encode("utf-8")).decode("ascii")
        except InvalidToken:
            return self.encrypt(self._decrypt_legacy(blob))

    def _decrypt_legacy(self, blob: str) -> Dict[str, Any]:
        if self._allow_plaintext:
            try:
                config = json.loads(blob)
            except json.JSONDecodeError:
                config = None
            if isinstance(config, dict):
                logger.warning("Bucket config stored as plaintext JSON; re-save the bucket to encrypt it")
                return config
        raise ConfigurationError("Bucket config could not be decrypted with the configured keys")
