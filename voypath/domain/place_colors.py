"""Contributor colors for places.

A place added by one member shows that member's color. Two to four
contributors blend into a weighted CSS gradient, and five or more turn
the place gold. System places (route endpoints) always render in a
neutral dark gray.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, Field

from voypath.domain.colors import RefinedColor
from voypath.domain.constants import SYSTEM_PLACE_CATEGORIES, SYSTEM_PLACE_TYPES
from voypath.domain.enums import ColorType, PlaceSource

NO_CONTRIBUTOR_COLOR = "#9CA3AF"
SYSTEM_PLACE_COLOR = "#374151"
FALLBACK_PLACE_COLOR = "#6B7280"
GOLD_COLOR = "#FFD700"
GOLD_GRADIENT = "linear-gradient(45deg, #FFD700 0%, #FFA500 50%, #FFD700 100%)"
GOLD_THRESHOLD = 5

_GRADIENT_ANGLES = {2: 90, 3: 120, 4: 45}
_BASE_BORDER = "2px solid rgba(255, 255, 255, 0.8)"
_BASE_SHADOW = "0 2px 8px rgba(0, 0, 0, 0.3)"

_ADDED_WEIGHT = 0.4
_WISH_WEIGHT = 0.3
_EDIT_WEIGHT = 0.2
_COMMENT_WEIGHT = 0.1


class MemberContribution(BaseModel):
    user_id: str
    user_name: str
    color: RefinedColor
    weight: float = 0.0


class PlaceColorResult(BaseModel):
    display_color: str
    color_type: ColorType
    contributions: list[MemberContribution] = Field(default_factory=list)
    css_gradient: Optional[str] = None
    gold_reason: Optional[str] = None


def _fmt_pct(value: float) -> str:
    number = int(value) if float(value).is_integer() else repr(value)
    return f"{number}%"


def generate_gradient(contributions: list[MemberContribution]) -> str:
    if len(contributions) < 2:
        hex_color = contributions[0].color.hex if contributions else NO_CONTRIBUTOR_COLOR
        return f"linear-gradient(0deg, {hex_color} 100%)"
    if len(contributions) >= GOLD_THRESHOLD:
        return GOLD_GRADIENT

    ordered = sorted(contributions, key=lambda c: c.weight, reverse=True)
    angle = _GRADIENT_ANGLES.get(len(ordered), 45)
    segment = 100 / len(ordered)

    stops = [f"{ordered[0].color.hex} {_fmt_pct(0)}"]
    for index, contribution in enumerate(ordered):
        stops.append(f"{contribution.color.hex} {_fmt_pct((index + 1) * segment)}")
    return f"linear-gradient({angle}deg, {', '.join(stops)})"


def calculate_place_color(contributions: list[MemberContribution]) -> PlaceColorResult:
    count = len(contributions)
    if count == 0:
        return PlaceColorResult(display_color=NO_CONTRIBUTOR_COLOR, color_type=ColorType.SINGLE)

    if count == 1:
        return PlaceColorResult(
            display_color=contributions[0].color.hex,
            color_type=ColorType.SINGLE,
            contributions=contributions,
        )

    if count >= GOLD_THRESHOLD:
        return PlaceColorResult(
            display_color=GOLD_COLOR,
            color_type=ColorType.GOLD,
            contributions=contributions,
            css_gradient=GOLD_GRADIENT,
            gold_reason=f"Place added by {count} members",
        )

    ordered = sorted(contributions, key=lambda c: c.weight, reverse=True)
    return PlaceColorResult(
        display_color=ordered[0].color.hex,
        color_type=ColorType.GRADIENT,
        contributions=ordered,
        css_gradient=generate_gradient(ordered),
    )


def calculate_contribution_weights(
    added_by: str,
    wish_levels: dict[str, int],
    edit_counts: Optional[dict[str, int]] = None,
    comment_counts: Optional[dict[str, int]] = None,
) -> list[tuple[str, float]]:
    """Normalised (user_id, weight) pairs, heaviest first.

    Adding the place is worth 0.4; wish level, edits and comments add up
    to 0.3, 0.2 and 0.1 scaled against the highest value in each group.
    """
    weights: dict[str, float] = {added_by: _ADDED_WEIGHT}

    max_wish = max(wish_levels.values(), default=0)
    if max_wish > 0:
        for user_id, wish in wish_levels.items():
            weights[user_id] = weights.get(user_id, 0.0) + (wish / max_wish) * _WISH_WEIGHT

    for counts, factor in ((edit_counts or {}, _EDIT_WEIGHT), (comment_counts or {}, _COMMENT_WEIGHT)):
        max_count = max(counts.values(), default=0)
        if max_count > 0:
            for user_id, n in counts.items():
                weights[user_id] = weights.get(user_id, 0.0) + (n / max_count) * factor

    total = sum(weights.values())
    normalised = [(user_id, w / total if total > 0 else 0.0) for user_id, w in weights.items()]
    return sorted(normalised, key=lambda pair: pair[1], reverse=True)


def generate_marker_css(result: PlaceColorResult) -> dict[str, str]:
    if result.color_type == ColorType.GOLD:
        return {
            "backgroundColor": GOLD_COLOR,
            "background": GOLD_GRADIENT,
            "border": "2px solid #FFA500",
            "boxShadow": "0 2px 8px rgba(255, 215, 0, 0.5)",
        }
    background = result.display_color
    if result.color_type == ColorType.GRADIENT and result.css_gradient:
        background = result.css_gradient
    return {
        "backgroundColor": result.display_color,
        "background": background,
        "border": _BASE_BORDER,
        "boxShadow": _BASE_SHADOW,
    }


def describe_place_color(result: PlaceColorResult) -> str:
    if not result.contributions:
        return "No color assigned"
    if result.color_type == ColorType.SINGLE:
        first = result.contributions[0]
        return f"{first.color.name} (added by {first.user_name})"
    if result.color_type == ColorType.GRADIENT:
        return "Gradient of " + ", ".join(c.user_name for c in result.contributions)
    return f"Gold ({len(result.contributions)} contributors)"


def format_for_storage(result: PlaceColorResult, *, now: Optional[dt.datetime] = None) -> dict[str, Any]:
    """The `display_color` plus `member_contribution` payload persisted on a place."""
    generated_at = (now or dt.datetime.now(dt.timezone.utc)).isoformat()
    return {
        "display_color": result.display_color,
        "member_contribution": {
            "type": result.color_type.value,
            "contributors": [
                {
                    "user_id": c.user_id,
                    "user_name": c.user_name,
                    "color_hex": c.color.hex,
                    "color_name": c.color.name,
                    "weight": round(c.weight, 4),
                }
                for c in result.contributions
            ],
            "css_gradient": result.css_gradient,
            "gold_reason": result.gold_reason,
            "generated_at": generated_at,
        },
    }


def is_system_place(
    *,
    source: Optional[str] = None,
    category: Optional[str] = None,
    place_type: Optional[str] = None,
) -> bool:
    if source == PlaceSource.SYSTEM.value:
        return True
    if place_type in SYSTEM_PLACE_TYPES:
        return True
    return category in SYSTEM_PLACE_CATEGORIES


__all__ = [
    "FALLBACK_PLACE_COLOR",
    "GOLD_COLOR",
    "GOLD_GRADIENT",
    "MemberContribution",
    "NO_CONTRIBUTOR_COLOR",
    "PlaceColorResult",
    "SYSTEM_PLACE_COLOR",
    "calculate_contribution_weights",
    "calculate_place_color",
    "describe_place_color",
    "format_for_storage",
    "generate_gradient",
    "generate_marker_css",
    "is_system_place",
]
