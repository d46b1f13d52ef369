"""RGB color value object."""

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class RGBColor(BaseModel):
    """Immutable 8-bit RGB color.

    Channels are always clamped into [0, 255] on construction, so any
    arithmetic result (blend, user input) can be passed straight in.

    Attributes:
        r: Red channel
        g: Green channel
        b: Blue channel
    """

    model_config = ConfigDict(frozen=True)

    r: int = 0
    g: int = 0
    b: int = 0

    @field_validator("r", "g", "b", mode="before")
    @classmethod
    def clamp_channel(cls, v: Any) -> int:
        """Clamp channel value into the 8-bit range."""
        return max(0, min(255, int(v)))

    @classmethod
    def from_rgb_int(cls, value: int) -> "RGBColor":
        """Build a color from a packed 24-bit integer."""
        return cls(r=(value >> 16) & 0xFF, g=(value >> 8) & 0xFF, b=value & 0xFF)

    @classmethod
    def from_hex(cls, value: str) -> "RGBColor":
        """Build a color from a ``#RRGGBB`` string."""
        raw = value.lstrip("#")
        if len(raw) != 6:
            raise ValueError(f"color must be hex format #RRGGBB, got '{value}'")
        return cls.from_rgb_int(int(raw, 16))

    @property
    def rgb_int(self) -> int:
        """Packed 24-bit integer as expected by the Govee control API."""
        return (self.r << 16) | (self.g << 8) | self.b

    @property
    def hex(self) -> str:
        return "#%02X%02X%02X" % (self.r, self.g, self.b)

    def blend(self, other: "RGBColor", progress: float) -> "RGBColor":
        """Linear interpolation towards ``other``.

        ``progress`` 0.0 returns this color, 1.0 returns ``other``; each
        channel is rounded to the nearest integer.
        """
        p = max(0.0, min(1.0, progress))
        return RGBColor(
            r=round(self.r * (1 - p) + other.r * p),
            g=round(self.g * (1 - p) + other.g * p),
            b=round(self.b * (1 - p) + other.b * p),
        )

    def __str__(self) -> str:
        return "RGB(%d,%d,%d)" % (self.r, self.g, self.b)


WHITE = RGBColor(r=255, g=255, b=255)
