"""Reader display settings and their validation rules."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping

FONT_FAMILIES = ("PT Serif", "PT Sans")
TEXT_ALIGNMENTS = ("left", "center", "right", "justify")

FONT_SIZE_RANGE = (10, 30)
LINE_HEIGHT_RANGE = (1.0, 3.0)

# JSON key -> attribute name
_FIELD_NAMES = {
    "fontSize": "font_size",
    "fontFamily": "font_family",
    "lineHeight": "line_height",
    "textAlign": "text_align",
    "showImages": "show_images",
    "showVideos": "show_videos",
}


class DisplaySettingsError(ValueError):
    """Raised when a settings payload is out of range or malformed."""


@dataclass(frozen=True)
class DisplaySettings:
    """Typography and media preferences applied when rendering an article."""

    font_size: int = 18
    font_family: str = "PT Serif"
    line_height: float = 1.6
    text_align: str = "left"
    show_images: bool = True
    show_videos: bool = True

    @property
    def font_class(self) -> str:
        return "font-pt-sans" if self.font_family == "PT Sans" else "font-pt-serif"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "DisplaySettings":
        """Build settings from a camelCase JSON mapping.

        Missing fields take their defaults and unknown keys are ignored.
        Out-of-range values are rejected, never clamped.
        """

        if not isinstance(payload, Mapping):
            raise DisplaySettingsError("Settings must be a JSON object")

        values: Dict[str, Any] = {}
        for key, attr in _FIELD_NAMES.items():
            if key in payload and payload[key] is not None:
                values[attr] = payload[key]

        settings = cls(**values)
        settings.validate()
        return settings

    def validate(self) -> None:
        if isinstance(self.font_size, bool) or not isinstance(self.font_size, int):
            raise DisplaySettingsError("Font size must be an integer")
        if not FONT_SIZE_RANGE[0] <= self.font_size <= FONT_SIZE_RANGE[1]:
            raise DisplaySettingsError("Font size must be between 10 and 30")

        if isinstance(self.line_height, bool) or not isinstance(self.line_height, (int, float)):
            raise DisplaySettingsError("Line height must be a number")
        if not LINE_HEIGHT_RANGE[0] <= float(self.line_height) <= LINE_HEIGHT_RANGE[1]:
            raise DisplaySettingsError("Line height must be between 1.0 and 3.0")

        if self.font_family not in FONT_FAMILIES:
            raise DisplaySettingsError("Invalid font family")
        if self.text_align not in TEXT_ALIGNMENTS:
            raise DisplaySettingsError("Invalid text alignment")

        if not isinstance(self.show_images, bool) or not isinstance(self.show_videos, bool):
            raise DisplaySettingsError("showImages and showVideos must be booleans")

    def to_payload(self) -> Dict[str, Any]:
        return {key: getattr(self, attr) for key, attr in _FIELD_NAMES.items()}


DEFAULT_DISPLAY_SETTINGS = DisplaySettings()


__all__ = [
    "DEFAULT_DISPLAY_SETTINGS",
    "DisplaySettings",
    "DisplaySettingsError",
    "FONT_FAMILIES",
    "TEXT_ALIGNMENTS",
]
