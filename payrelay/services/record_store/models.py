"""Structured record store table.

One row per document: the logical collection name plus the record id form the
key, and the document body lives in a JSON column.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from payrelay.common.db import Base


class StoredRecord(Base):
    """A document in one logical collection (orders, payments, ...)."""

    __tablename__ = "records"
    __table_args__ = (Index("ix_records_collection_created_at", "collection", "created_at"),)

    collection: Mapped[str] = mapped_column(String, primary_key=True)
    record_id: Mapped[str] = mapped_column(String, primary_key=True)
    data: Mapped[dict] = mapped_column(JSON().with_variant(JSONB(), "postgresql"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
