"""Member color palette and pure color helpers."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from pydantic import BaseModel

from voypath.domain.constants import MAX_MEMBER_COLORS

_logger = logging.getLogger("voypath.colors")

_INVALID_COLOR_VALUES = {
    "",
    "#000000",
    "undefined",
    "null",
    "black",
    "rgb(0, 0, 0)",
    "rgba(0, 0, 0, 1)",
}
_DIGITS_RE = re.compile(r"\d+")


class RefinedColor(BaseModel):
    id: int
    name: str
    hex: str
    rgb: str
    hsl: str


PALETTE: tuple[RefinedColor, ...] = tuple(
    RefinedColor(id=i, name=name, hex=hex_, rgb=rgb, hsl=hsl)
    for i, (name, hex_, rgb, hsl) in enumerate(
        (
            ("Ocean Blue", "#0077BE", "rgb(0,119,190)", "hsl(202,100%,37%)"),
            ("Forest Green", "#228B22", "rgb(34,139,34)", "hsl(120,61%,34%)"),
            ("Sunset Orange", "#FF6B35", "rgb(255,107,53)", "hsl(16,100%,60%)"),
            ("Royal Purple", "#7B68EE", "rgb(123,104,238)", "hsl(249,80%,67%)"),
            ("Cherry Red", "#DC143C", "rgb(220,20,60)", "hsl(348,83%,47%)"),
            ("Teal", "#008080", "rgb(0,128,128)", "hsl(180,100%,25%)"),
            ("Amber", "#FFC000", "rgb(255,192,0)", "hsl(45,100%,50%)"),
            ("Lavender", "#E6E6FA", "rgb(230,230,250)", "hsl(240,67%,94%)"),
            ("Coral", "#FF7F50", "rgb(255,127,80)", "hsl(16,100%,66%)"),
            ("Emerald", "#50C878", "rgb(80,200,120)", "hsl(140,54%,55%)"),
            ("Magenta", "#FF00FF", "rgb(255,0,255)", "hsl(300,100%,50%)"),
            ("Navy", "#000080", "rgb(0,0,128)", "hsl(240,100%,25%)"),
            ("Rose", "#FF007F", "rgb(255,0,127)", "hsl(330,100%,50%)"),
            ("Lime", "#32CD32", "rgb(50,205,50)", "hsl(120,61%,50%)"),
            ("Indigo", "#4B0082", "rgb(75,0,130)", "hsl(275,100%,25%)"),
            ("Turquoise", "#40E0D0", "rgb(64,224,208)", "hsl(174,72%,56%)"),
            ("Crimson", "#B22222", "rgb(178,34,34)", "hsl(0,68%,42%)"),
            ("Olive", "#808000", "rgb(128,128,0)", "hsl(60,100%,25%)"),
            ("Slate", "#708090", "rgb(112,128,144)", "hsl(210,13%,50%)"),
            ("Maroon", "#800000", "rgb(128,0,0)", "hsl(0,100%,25%)"),
        ),
        start=1,
    )
)


def color_by_index(index: int) -> Optional[RefinedColor]:
    if 1 <= index <= len(PALETTE):
        return PALETTE[index - 1]
    return None


def first_free_index(used: Iterable[Optional[int]]) -> Optional[int]:
    taken = {i for i in used if i is not None}
    for color in PALETTE:
        if color.id not in taken:
            return color.id
    return None


def available_colors(used: Iterable[Optional[int]]) -> list[RefinedColor]:
    taken = {i for i in used if i is not None}
    return [c for c in PALETTE if c.id not in taken]


def used_colors(used: Iterable[Optional[int]]) -> list[RefinedColor]:
    taken = {i for i in used if i is not None}
    return [c for c in PALETTE if c.id in taken]


def color_for_index_fallback(identifier: str | int | None) -> RefinedColor:
    """Stable palette color derived from the digits in an id, for members without an assignment."""
    digits = "".join(_DIGITS_RE.findall(str(identifier or "")))
    n = int(digits) if digits else 1
    return PALETTE[((n - 1) % MAX_MEMBER_COLORS)]


def _hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    value = hex_color.lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    if len(value) != 6:
        raise ValueError(f"invalid hex color: {hex_color!r}")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def _rgb_to_hex(r: int, g: int, b: int) -> str:
    return f"#{r:02x}{g:02x}{b:02x}"


def contrast_color(hex_color: str) -> str:
    """Black or white text, whichever reads better on the given background."""
    r, g, b = _hex_to_rgb(hex_color)
    luminance = (0.299 * r + 0.587 * g + 0.114 * b) / 255
    return "#000000" if luminance > 0.5 else "#FFFFFF"


def color_variants(hex_color: str) -> dict[str, str]:
    r, g, b = _hex_to_rgb(hex_color)

    def lighten(value: int, factor: float) -> int:
        return min(255, _round_half_up(value + (255 - value) * factor))

    def darken(value: int, factor: float) -> int:
        return max(0, _round_half_up(value * (1 - factor)))

    return {
        "light": _rgb_to_hex(lighten(r, 0.3), lighten(g, 0.3), lighten(b, 0.3)),
        "dark": _rgb_to_hex(darken(r, 0.3), darken(g, 0.3), darken(b, 0.3)),
        "lighter": _rgb_to_hex(lighten(r, 0.6), lighten(g, 0.6), lighten(b, 0.6)),
        "darker": _rgb_to_hex(darken(r, 0.6), darken(g, 0.6), darken(b, 0.6)),
    }


def is_valid_color(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() not in _INVALID_COLOR_VALUES


def color_or_fallback(value: Optional[str], fallback_index: int = 0) -> str:
    if is_valid_color(value):
        return str(value)
    _logger.debug("invalid color %r, using palette fallback %d", value, fallback_index)
    return PALETTE[fallback_index % len(PALETTE)].hex


__all__ = [
    "PALETTE",
    "RefinedColor",
    "available_colors",
    "color_by_index",
    "color_for_index_fallback",
    "color_or_fallback",
    "color_variants",
    "contrast_color",
    "first_free_index",
    "is_valid_color",
    "used_colors",
]
