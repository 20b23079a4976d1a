from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


class KeyValueEntry(Base):
    """Key-value area: settings, license, keyword stats, schema marker."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, default="null", nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class LibraryRecord(Base):
    """Templates and categories, one row per record.

    The full record lives in `data_json`; indexed fields are copied into
    columns so index lookups do not need to decode JSON.
    """

    __tablename__ = "library_records"

    store: Mapped[str] = mapped_column(String(32), primary_key=True)  # templates|categories
    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    category: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    is_prebuilt: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    data_json: Mapped[str] = mapped_column(Text, default="{}", nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_library_records_store_category", "store", "category"),
        Index("ix_library_records_store_name", "store", "name"),
        Index("ix_library_records_store_prebuilt", "store", "is_prebuilt"),
    )
