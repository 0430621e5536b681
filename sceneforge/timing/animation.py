from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Sequence

from sceneforge.timing.easing import Easing, ease

if TYPE_CHECKING:
    from sceneforge.timing.graph import RenderAsset

SLIDE_DISTANCE = 100.0
KEN_BURNS_ZOOM = 0.2
KEN_BURNS_PAN = 5.0


class AnimationType(str, Enum):
    NONE = "none"
    FADE_IN = "fadeIn"
    SLIDE_IN_LEFT = "slideInLeft"
    SLIDE_IN_RIGHT = "slideInRight"
    SLIDE_IN_TOP = "slideInTop"
    SLIDE_IN_BOTTOM = "slideInBottom"
    ZOOM_IN = "zoomIn"
    ZOOM_OUT = "zoomOut"
    ROTATE_IN = "rotateIn"
    KEN_BURNS = "kenBurns"

    @classmethod
    def parse(cls, value: str | AnimationType | None) -> AnimationType:
        """Missing values get the asset default, unknown ones disable the animation."""
        if value is None or value == "":
            return cls.FADE_IN
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.NONE


@dataclass(frozen=True)
class AnimatedTransform:
    x: float
    y: float
    scale: float
    rotation: float
    opacity: float


@dataclass(frozen=True)
class AnimationConfig:
    type: AnimationType
    duration: float
    delay: float = 0.0
    easing: Easing = Easing.EASE_OUT


IMAGE_ANIMATIONS: tuple[AnimationType, ...] = (
    AnimationType.FADE_IN,
    AnimationType.SLIDE_IN_LEFT,
    AnimationType.SLIDE_IN_RIGHT,
    AnimationType.ZOOM_IN,
    AnimationType.KEN_BURNS,
)


def default_animation(
    kind: str,
    choice: Callable[[Sequence[AnimationType]], AnimationType] | None = None,
) -> AnimationConfig:
    """Animation assigned to a freshly added asset.

    Videos always fade in quickly; images get one of the livelier entrances.
    """
    if kind == "video":
        return AnimationConfig(type=AnimationType.FADE_IN, duration=0.5)
    picker = choice or random.choice
    return AnimationConfig(type=picker(IMAGE_ANIMATIONS), duration=1.0)


def animation_progress(current_time: float, delay: float, duration: float) -> float:
    if current_time != current_time or current_time < delay:
        return 0.0
    if duration <= 0 or current_time >= delay + duration:
        return 1.0
    return (current_time - delay) / duration


def ken_burns_progress(current_time: float, scene_duration: float) -> float:
    if scene_duration <= 0 or scene_duration != scene_duration:
        return 1.0
    if current_time != current_time:
        return 0.0
    return min(1.0, max(0.0, current_time / scene_duration))


def compute_transform(asset: RenderAsset, current_time: float, scene_duration: float) -> AnimatedTransform:
    """Transform of ``asset`` at ``current_time`` seconds into its scene.

    Pure: the same asset and time always give the same result, so it is
    evaluated afresh on every preview tick and every rendered frame.
    """
    x = asset.x
    y = asset.y
    scale = asset.scale
    rotation = asset.rotation
    opacity = asset.opacity
    kind = AnimationType.parse(asset.animation_type)

    if kind is AnimationType.KEN_BURNS:
        drift = ken_burns_progress(current_time, scene_duration)
        return AnimatedTransform(
            x=x - KEN_BURNS_PAN * drift,
            y=y - KEN_BURNS_PAN * drift,
            scale=scale * (1 + KEN_BURNS_ZOOM * drift),
            rotation=rotation,
            opacity=opacity,
        )
    if kind is AnimationType.NONE:
        return AnimatedTransform(x=x, y=y, scale=scale, rotation=rotation, opacity=opacity)

    raw = animation_progress(current_time, asset.animation_delay, asset.animation_duration)
    p = ease(raw, asset.animation_easing)
    remaining = 1 - p

    if kind is AnimationType.SLIDE_IN_LEFT:
        x -= SLIDE_DISTANCE * remaining
    elif kind is AnimationType.SLIDE_IN_RIGHT:
        x += SLIDE_DISTANCE * remaining
    elif kind is AnimationType.SLIDE_IN_TOP:
        y -= SLIDE_DISTANCE * remaining
    elif kind is AnimationType.SLIDE_IN_BOTTOM:
        y += SLIDE_DISTANCE * remaining
    elif kind is AnimationType.ZOOM_IN:
        scale *= 0.5 + 0.5 * p
    elif kind is AnimationType.ZOOM_OUT:
        scale *= 1.5 - 0.5 * p
    elif kind is AnimationType.ROTATE_IN:
        rotation += 360 * remaining
    return AnimatedTransform(x=x, y=y, scale=scale, rotation=rotation, opacity=opacity * p)
