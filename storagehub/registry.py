# storagehub/registry.py
"""
Bucket registry: persistence for StorageBucket records.

The registry only ever sees encrypted config (config_json); encryption and
decryption belong to ProviderFactory.

Default flags: each of is_default / is_default_chat / is_default_forms is held
by at most one bucket. Setting a flag clears it on every other row in the same
transaction.
"""

import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storagehub.models import StorageBucket
from storagehub.storage.base import BucketPurpose
from storagehub.storage.config import resolve_provider_type, resolve_purpose

logger = logging.getLogger(__name__)

PURPOSE_FLAGS: Dict[BucketPurpose, str] = {
    BucketPurpose.GENERAL: "is_default",
    BucketPurpose.CHAT: "is_default_chat",
    BucketPurpose.FORMS: "is_default_forms",
}

UPDATABLE_FIELDS = {"name", "description", "config_json", *PURPOSE_FLAGS.values()}


class BucketRegistry:
    """Read/write access to storage_buckets through one SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_bucket(self, bucket_id: str) -> Optional[StorageBucket]:
        return self.db.get(StorageBucket, bucket_id)

    def list_buckets(self) -> List[StorageBucket]:
        """All buckets, newest first."""
        return (
            self.db.query(StorageBucket)
            .order_by(StorageBucket.created_at.desc())
            .all()
        )

    def get_default_bucket(self, purpose: Union[str, BucketPurpose] = BucketPurpose.GENERAL) -> Optional[StorageBucket]:
        """The bucket holding the default flag for `purpose`, if any."""
        flag = getattr(StorageBucket, PURPOSE_FLAGS[resolve_purpose(purpose)])
        return (
            self.db.query(StorageBucket)
            .filter(flag.is_(True))
            .order_by(StorageBucket.created_at.desc())
            .first()
        )

    def get_defaults(self) -> Dict[str, Optional[str]]:
        """Bucket id per purpose, e.g. {"general": "...", "chat": None, "forms": "..."}."""
        defaults = {}
        for purpose in BucketPurpose:
            bucket = self.get_default_bucket(purpose)
            defaults[purpose.value] = bucket.id if bucket else None
        return defaults

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _clear_flags(self, flags: List[str], keep_id: str) -> None:
        for flag in flags:
            column = getattr(StorageBucket, flag)
            (
                self.db.query(StorageBucket)
                .filter(column.is_(True), StorageBucket.id != keep_id)
                .update({column: False}, synchronize_session="fetch")
            )

    def create_bucket(
        self,
        *,
        name: str,
        provider: str,
        config_json: str,
        description: Optional[str] = None,
        is_default: bool = False,
        is_default_chat: bool = False,
        is_default_forms: bool = False,
        created_by: Optional[str] = None,
    ) -> StorageBucket:
        """
        Insert a bucket. config_json must already be encrypted.

        Raises:
            UnsupportedProviderError: unknown provider discriminator
        """
        provider_type = resolve_provider_type(provider)
        flags = {
            "is_default": is_default,
            "is_default_chat": is_default_chat,
            "is_default_forms": is_default_forms,
        }
        now = datetime.utcnow()
        bucket = StorageBucket(
            id=str(uuid.uuid4()),
            name=name,
            description=description,
            provider=provider_type.value,
            config_json=config_json,
            created_by=created_by,
            created_at=now,
            updated_at=now,
            **flags,
        )

        try:
            self._clear_flags([f for f, on in flags.items() if on], keep_id=bucket.id)
            self.db.add(bucket)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Failed to create bucket {name!r}", exc_info=True)
            raise

        self.db.refresh(bucket)
        logger.info(f"Created storage bucket {bucket.id} ({provider_type.value})")
        return bucket

    def update_bucket(self, bucket_id: str, **changes) -> Optional[StorageBucket]:
        """
        Update fields in place. Unknown fields raise ValueError; None values are skipped.

        Returns:
            Updated bucket, or None if it does not exist
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update bucket fields: {', '.join(sorted(unknown))}")

        bucket = self.get_bucket(bucket_id)
        if bucket is None:
            return None

        changes = {k: v for k, v in changes.items() if v is not None}
        try:
            self._clear_flags(
                [flag for flag in PURPOSE_FLAGS.values() if changes.get(flag)],
                keep_id=bucket_id,
            )
            for field_name, value in changes.items():
                setattr(bucket, field_name, value)
            bucket.updated_at = datetime.utcnow()
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Failed to update bucket {bucket_id}", exc_info=True)
            raise

        self.db.refresh(bucket)
        return bucket

    def delete_bucket(self, bucket_id: str) -> bool:
        """
        Delete a bucket record.

        Callers must check the bucket holds no stored files first.

        Returns:
            True if deleted, False if not found
        """
        bucket = self.get_bucket(bucket_id)
        if bucket is None:
            return False

        try:
            self.db.delete(bucket)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info(f"Deleted storage bucket {bucket_id}")
        return True
