from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: kv_entries
# ---------------------------


class KvEntry(Base):
    """One named JSON blob (``transactions``, ``categories``, ``trips``...).

    The application treats the table like browser local storage: every write
    replaces the whole serialized value for a key. ``value`` holds the JSON
    text exactly as produced by the caller; decoding and validation happen in
    ``pocket_ledger.storage``.
    """

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.current_timestamp(),
        onupdate=func.current_timestamp(),
    )


__all__ = [
    "Base",
    "KvEntry",
]
