"""Unit tests for RGBColor."""

import pytest

from statuslight.src.models import RGBColor


class TestRGBColor:
    def test_channels_are_clamped(self):
        color = RGBColor(r=300, g=-5, b=128)

        assert (color.r, color.g, color.b) == (255, 0, 128)

    def test_packed_integer(self):
        color = RGBColor(r=0x12, g=0x34, b=0x56)

        assert color.rgb_int == 0x123456
        assert RGBColor.from_rgb_int(0x123456) == color

    def test_hex(self):
        assert RGBColor.from_hex("#ff8800") == RGBColor(r=255, g=136, b=0)
        assert RGBColor(r=255, g=136, b=0).hex == "#FF8800"

    def test_invalid_hex(self):
        with pytest.raises(ValueError):
            RGBColor.from_hex("#FFF")

    def test_blend_endpoints(self):
        green = RGBColor(r=0, g=255, b=0)
        red = RGBColor(r=255, g=0, b=0)

        assert green.blend(red, 0.0) == green
        assert green.blend(red, 1.0) == red
        assert green.blend(red, 2.0) == red

    def test_blend_midpoint_rounds(self):
        mid = RGBColor(r=0, g=255, b=0).blend(RGBColor(r=255, g=0, b=0), 0.5)

        assert mid.r in (127, 128)
        assert mid.g in (127, 128)
        assert mid.b == 0

    def test_str(self):
        assert str(RGBColor(r=1, g=2, b=3)) == "RGB(1,2,3)"
