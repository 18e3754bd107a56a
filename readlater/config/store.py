"""Persistence of per-user reader display settings."""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from readlater.config.display import DEFAULT_DISPLAY_SETTINGS, DisplaySettings
from readlater.db.models import ReaderSettingsRecord

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "default"


def _to_settings(record: ReaderSettingsRecord) -> DisplaySettings:
    return DisplaySettings(
        font_size=int(record.font_size),
        font_family=str(record.font_family),
        line_height=float(record.line_height),
        text_align=str(record.text_align),
        show_images=bool(record.show_images),
        show_videos=bool(record.show_videos),
    )


def get_display_settings(session: Session, user_id: str = DEFAULT_USER_ID) -> DisplaySettings:
    """Return stored settings for ``user_id`` or the defaults when none exist."""

    record = (
        session.query(ReaderSettingsRecord)
        .filter(ReaderSettingsRecord.user_id == user_id)
        .one_or_none()
    )
    if record is None:
        return DEFAULT_DISPLAY_SETTINGS
    return _to_settings(record)


def save_display_settings(
    session: Session,
    user_id: str,
    settings: DisplaySettings,
) -> DisplaySettings:
    """Insert or update the settings row for ``user_id``.

    ``settings`` is validated again so nothing out of range reaches storage
    even when a caller skipped ``DisplaySettings.from_payload``.
    """

    settings.validate()
    record = (
        session.query(ReaderSettingsRecord)
        .filter(ReaderSettingsRecord.user_id == user_id)
        .one_or_none()
    )
    if record is None:
        record = ReaderSettingsRecord(user_id=user_id)
        session.add(record)

    record.font_size = settings.font_size
    record.font_family = settings.font_family
    record.line_height = float(settings.line_height)
    record.text_align = settings.text_align
    record.show_images = settings.show_images
    record.show_videos = settings.show_videos
    session.flush()

    logger.info(
        "Saved display settings for %s",
        user_id,
        extra={"event": "settings.saved", "user_id": user_id},
    )
    return settings


__all__ = ["DEFAULT_USER_ID", "get_display_settings", "save_display_settings"]
