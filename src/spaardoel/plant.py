"""Map savings progress to the growth stage of the goal plant.

The mapping is a pure function of the progress percentage and the chosen
plant type.  :func:`describe_plant` bundles every derived value into a
:class:`PlantVisual` which :func:`render_plant_svg` turns into an inline SVG
drawing for the web frontend.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple, Union

Number = Union[int, float, Decimal]

DEFAULT_PLANT_TYPE = "sunflower"

PLANT_COLORS = {
    "sunflower": "#ffd700",
    "rose": "#ff6b9d",
    "tulip": "#c44569",
    "daisy": "#f8b500",
}

PLANT_SIZES = {
    "small": 128,
    "medium": 256,
    "large": 384,
}

PETAL_COUNT = 8
PETAL_STEP_DEGREES = 45
SPARKLE_THRESHOLD = 25

SOIL_COLOR = "#8B4513"
STEM_COLOR = "#228B22"
LEAF_COLOR = "#32CD32"
SPARKLE_COLOR = "#FFD700"


class PlantStage(str, Enum):
    """Growth stages in the order a plant passes through them."""

    SEED = "seed"
    SPROUT = "sprout"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    FLOWERING = "flowering"
    FRUITING = "fruiting"

    @property
    def rank(self) -> int:
        return _STAGE_ORDER.index(self)


_STAGE_ORDER: Tuple[PlantStage, ...] = tuple(PlantStage)

# Upper bounds are exclusive; anything at or above the last bound is fruiting.
STAGE_THRESHOLDS: Tuple[Tuple[float, PlantStage], ...] = (
    (10, PlantStage.SEED),
    (25, PlantStage.SPROUT),
    (50, PlantStage.SMALL),
    (75, PlantStage.MEDIUM),
    (95, PlantStage.LARGE),
    (100, PlantStage.FLOWERING),
)


@dataclass(frozen=True, slots=True)
class PlantVisual:
    """Rendering parameters derived from a progress percentage."""

    percentage: float
    plant_type: str
    stage: PlantStage
    plant_height: float
    stem_height: float
    leaf_count: int
    color: str

    @property
    def show_petals(self) -> bool:
        return self.stage in (PlantStage.FLOWERING, PlantStage.FRUITING)

    @property
    def show_fruit(self) -> bool:
        return self.stage is PlantStage.FRUITING

    @property
    def show_sparkles(self) -> bool:
        return self.percentage >= SPARKLE_THRESHOLD

    @property
    def petal_angles(self) -> Tuple[int, ...]:
        if not self.show_petals:
            return ()
        return tuple(i * PETAL_STEP_DEGREES for i in range(PETAL_COUNT))

    def as_dict(self) -> dict:
        return {
            "percentage": self.percentage,
            "plant_type": self.plant_type,
            "stage": self.stage.value,
            "plant_height": self.plant_height,
            "stem_height": self.stem_height,
            "leaf_count": self.leaf_count,
            "color": self.color,
            "petals": list(self.petal_angles),
            "fruit": self.show_fruit,
            "sparkles": self.show_sparkles,
        }


def _as_float(percentage: Number) -> float:
    try:
        value = float(percentage)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return value


def get_stage(percentage: Number) -> PlantStage:
    """Return the growth stage for ``percentage``."""

    value = _as_float(percentage)
    for upper_bound, stage in STAGE_THRESHOLDS:
        if value < upper_bound:
            return stage
    return PlantStage.FRUITING


def plant_height(percentage: Number) -> float:
    """Plant height as a share of the drawing area, never below 5."""

    return max(_as_float(percentage) * 0.8, 5.0)


def stem_height(percentage: Number) -> float:
    return max(plant_height(percentage) * 0.6, 10.0)


def leaf_count(percentage: Number) -> int:
    """One leaf per full 20 percent of progress."""

    value = _as_float(percentage)
    if value <= 0 or math.isinf(value):
        return 0
    return int(math.floor(value / 20))


def normalize_plant_type(plant_type: Optional[str]) -> str:
    """Return ``plant_type`` when known, otherwise the default type."""

    key = (plant_type or "").strip().lower()
    return key if key in PLANT_COLORS else DEFAULT_PLANT_TYPE


def plant_color(plant_type: Optional[str] = None) -> str:
    return PLANT_COLORS[normalize_plant_type(plant_type)]


def describe_plant(percentage: Number, plant_type: Optional[str] = None) -> PlantVisual:
    """Compute the stage and every rendering parameter in one go."""

    value = _as_float(percentage)
    kind = normalize_plant_type(plant_type)
    return PlantVisual(
        percentage=value,
        plant_type=kind,
        stage=get_stage(value),
        plant_height=plant_height(value),
        stem_height=stem_height(value),
        leaf_count=leaf_count(value),
        color=PLANT_COLORS[kind],
    )


def progress_percentage(saved: Number, target: Number) -> float:
    """Return ``saved / target * 100`` without clamping over-funded goals."""

    target_value = _as_float(target)
    if target_value <= 0:
        return 0.0
    return _as_float(saved) / target_value * 100


# ---------------------------------------------------------------------------
# SVG rendering
# ---------------------------------------------------------------------------
_GROUND_Y = 190
_CENTER_X = 100
# Leaves above this index would leave the 200x200 canvas.
_MAX_DRAWN_LEAVES = 11


def _fmt(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def _leaf_path(index: int) -> str:
    left = index % 2 == 0
    start_x = 95 + (-10 if left else 15)
    ctrl_x = 100 + (-20 if left else 25)
    end_x = 97 + (-5 if left else 10)
    offset = index * 15
    return (
        f"M {start_x} {180 - offset} Q {ctrl_x} {175 - offset} {end_x} {170 - offset}"
    )


def render_plant_svg(visual: PlantVisual, *, size: str = "medium", css_class: str = "") -> str:
    """Return an inline SVG drawing for ``visual``."""

    pixels = PLANT_SIZES.get(size, PLANT_SIZES["medium"])
    # Over-funded goals keep growing on paper; the drawing stays on the canvas.
    stem = min(visual.stem_height, 150.0)
    top = _GROUND_Y - stem
    parts: List[str] = [
        f"<svg xmlns='http://www.w3.org/2000/svg' viewBox='0 0 200 200' width='{pixels}' height='{pixels}'"
        f" class='plant plant--{visual.stage.value}{(' ' + css_class) if css_class else ''}'"
        f" data-stage='{visual.stage.value}' role='img' aria-label='{visual.stage.value} plant'>",
        f"<ellipse cx='100' cy='190' rx='80' ry='10' fill='{SOIL_COLOR}' opacity='0.3'/>",
    ]
    if visual.stage is not PlantStage.SEED:
        parts.append(
            f"<rect class='plant-stem' x='97' y='{_fmt(top)}' width='6' height='{_fmt(stem)}'"
            f" fill='{STEM_COLOR}' rx='3'/>"
        )
    for index in range(min(visual.leaf_count, _MAX_DRAWN_LEAVES)):
        parts.append(f"<path class='plant-leaf' d='{_leaf_path(index)}' fill='{LEAF_COLOR}'/>")
    if visual.show_petals:
        parts.append(f"<circle class='plant-flower' cx='100' cy='{_fmt(top)}' r='15' fill='{visual.color}'/>")
        for angle in visual.petal_angles:
            radians = math.radians(angle)
            petal_x = _CENTER_X + math.cos(radians) * 20
            petal_y = top + math.sin(radians) * 20
            parts.append(
                f"<ellipse class='plant-petal' cx='{_fmt(petal_x)}' cy='{_fmt(petal_y)}' rx='8' ry='12'"
                f" fill='{visual.color}' opacity='0.9'"
                f" transform='rotate({angle} {_fmt(petal_x)} {_fmt(petal_y)})'/>"
            )
    if visual.show_fruit:
        parts.append(f"<circle class='plant-fruit' cx='100' cy='{_fmt(top)}' r='8' fill='{SOIL_COLOR}'/>")
    if visual.stage is PlantStage.SEED:
        parts.append(f"<ellipse class='plant-seed' cx='100' cy='185' rx='4' ry='6' fill='{SOIL_COLOR}'/>")
    if visual.stage is PlantStage.SPROUT:
        parts.append(
            f"<path class='plant-sprout' d='M 100 185 Q 95 175 100 170' stroke='{LEAF_COLOR}'"
            " stroke-width='3' fill='none'/>"
        )
        parts.append(f"<ellipse cx='98' cy='172' rx='3' ry='5' fill='{LEAF_COLOR}'/>")
    if visual.show_sparkles:
        for index in range(3):
            parts.append(
                f"<circle class='plant-sparkle' cx='{80 + index * 40}' cy='{150 - index * 10}' r='2'"
                f" fill='{SPARKLE_COLOR}'/>"
            )
    parts.append(
        "<text x='100' y='20' text-anchor='middle' font-size='14' font-weight='600' fill='#374151'>"
        f"{visual.percentage:.0f}%</text>"
    )
    parts.append("</svg>")
    return "".join(parts)


__all__ = [
    "DEFAULT_PLANT_TYPE",
    "PLANT_COLORS",
    "PLANT_SIZES",
    "PlantStage",
    "PlantVisual",
    "STAGE_THRESHOLDS",
    "describe_plant",
    "get_stage",
    "leaf_count",
    "normalize_plant_type",
    "plant_color",
    "plant_height",
    "progress_percentage",
    "render_plant_svg",
    "stem_height",
]
