"""SQLAlchemy ORM models backing the preview cache."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class PreviewMapping(Base):
    """Last resolution outcome for an external id and media kind."""

    __tablename__ = "preview_mappings"
    __table_args__ = (
        UniqueConstraint("external_id", "media_kind", name="uq_preview_identity"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(64), index=True)
    media_kind: Mapped[str] = mapped_column(String(16))
    source_kind: Mapped[str] = mapped_column(String(16), default="absent")
    preview_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    relay_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    track_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    region: Mapped[str | None] = mapped_column(String(8), nullable=True)
    last_checked: Mapped[datetime] = mapped_column(DateTime, index=True)
