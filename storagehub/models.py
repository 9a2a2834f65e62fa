# storagehub/models.py
"""
Bucket registry database models

Tables:
- StorageBucket: logical bucket records, one per physical container + its
  encrypted connection config
"""

from datetime import datetime
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    String,
    Text,
    text,
)

from storagehub.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class StorageBucket(Base):
    """
    Logical bucket.

    Not the provider's own bucket name: that lives inside the encrypted config.
    Each default flag is held by at most one row; BucketRegistry enforces it.
    """
    __tablename__ = "storage_buckets"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    provider = Column(String(32), nullable=False)  # "native" | "compatible"

    # Default-purpose flags
    is_default = Column(Boolean, default=False, nullable=False)
    is_default_chat = Column(Boolean, default=False, nullable=False)
    is_default_forms = Column(Boolean, default=False, nullable=False)

    config_json = Column(Text, nullable=False)  # Fernet token, never plaintext

    # Audit
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_storage_buckets_created_at", "created_at"),
        *(
            Index(
                f"uq_storage_buckets_{flag}",
                flag,
                unique=True,
                postgresql_where=text(flag),
                sqlite_where=text(flag),
            )
            for flag in ("is_default", "is_default_chat", "is_default_forms")
        ),
    )

    def __repr__(self) -> str:
        return f"<StorageBucket {self.id} {self.name!r} provider={self.provider}>"
