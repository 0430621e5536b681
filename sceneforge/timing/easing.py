from __future__ import annotations

from enum import Enum


class Easing(str, Enum):
    LINEAR = "linear"
    EASE_IN = "easeIn"
    EASE_OUT = "easeOut"
    EASE_IN_OUT = "easeInOut"

    @classmethod
    def parse(cls, value: str | Easing | None) -> Easing:
        """Missing values get the asset default, unknown ones degrade to linear."""
        if value is None or value == "":
            return cls.EASE_OUT
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.LINEAR


def clamp_progress(progress: float) -> float:
    if progress != progress:  # NaN
        return 0.0
    return min(1.0, max(0.0, progress))


def ease(progress: float, kind: Easing | str | None = Easing.LINEAR) -> float:
    p = clamp_progress(progress)
    if not isinstance(kind, Easing):
        try:
            kind = Easing(kind)
        except ValueError:
            kind = Easing.LINEAR
    if kind is Easing.EASE_IN:
        return p * p
    if kind is Easing.EASE_OUT:
        return 1 - (1 - p) * (1 - p)
    if kind is Easing.EASE_IN_OUT:
        if p < 0.5:
            return 2 * p * p
        return 1 - (-2 * p + 2) ** 2 / 2
    return p
