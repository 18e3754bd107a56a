"""SQLAlchemy models for readlater storage."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String

from .base import Base


class ReaderSettingsRecord(Base):
    __tablename__ = "reader_settings"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(255), nullable=False, unique=True)
    font_size = Column(Integer, nullable=False, default=18)
    font_family = Column(String(64), nullable=False, default="PT Serif")
    line_height = Column(Float, nullable=False, default=1.6)
    text_align = Column(String(16), nullable=False, default="left")
    show_images = Column(Boolean, nullable=False, default=True)
    show_videos = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<ReaderSettingsRecord user_id={self.user_id!r}>"


__all__ = ["ReaderSettingsRecord"]
