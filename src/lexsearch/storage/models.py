"""SQLAlchemy models for the durable cache tier."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""


class CacheRecord(Base):
    """One persisted cache entry.

    Timestamps are epoch seconds from the injected clock rather than database
    server time, so expiry behaves the same in tests and in production.
    """

    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    # JSON text, or base64 of gzipped JSON when ``compressed`` is set
    payload: Mapped[str] = mapped_column(Text)
    compressed: Mapped[bool] = mapped_column(Boolean, default=False)
    checksum: Mapped[Optional[str]] = mapped_column(String(64), default=None)

    created_at: Mapped[float] = mapped_column(Float)
    expires_at: Mapped[Optional[float]] = mapped_column(Float, default=None, index=True)
    last_accessed: Mapped[float] = mapped_column(Float, index=True)
    access_count: Mapped[int] = mapped_column(Integer, default=0)
