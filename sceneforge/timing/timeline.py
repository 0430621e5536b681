from __future__ import annotations

import math
from bisect import bisect_right
from dataclasses import dataclass
from typing import Generic, Protocol, Sequence, TypeVar


class HasDuration(Protocol):
    duration: float


SceneT = TypeVar("SceneT", bound=HasDuration)


def frames_for(duration: float, fps: float) -> int:
    """Frame count of a scene: half-up rounding, never below one frame."""
    if not math.isfinite(duration) or duration <= 0:
        return 1
    return max(1, int(math.floor(duration * fps + 0.5)))


@dataclass(frozen=True)
class SceneRange(Generic[SceneT]):
    scene: SceneT
    index: int
    start_frame: int
    end_frame: int

    @property
    def frame_count(self) -> int:
        return self.end_frame - self.start_frame + 1

    def contains(self, frame: int) -> bool:
        return self.start_frame <= frame <= self.end_frame


def layout_scenes(scenes: Sequence[SceneT], fps: float) -> list[SceneRange[SceneT]]:
    """Contiguous, non-overlapping frame ranges in scene order, starting at 0.

    ``end_frame`` is inclusive, so ``ranges[i].end_frame + 1 ==
    ranges[i + 1].start_frame``.
    """
    if not fps or fps <= 0:
        raise ValueError("fps must be positive")
    ranges: list[SceneRange[SceneT]] = []
    cursor = 0
    for index, scene in enumerate(scenes):
        count = frames_for(scene.duration, fps)
        ranges.append(SceneRange(scene=scene, index=index, start_frame=cursor, end_frame=cursor + count - 1))
        cursor += count
    return ranges


class TimelineLayout(Generic[SceneT]):
    def __init__(self, scenes: Sequence[SceneT], fps: float) -> None:
        self.fps = fps
        self.ranges = layout_scenes(scenes, fps)
        self._starts = [item.start_frame for item in self.ranges]

    @property
    def total_frames(self) -> int:
        return self.ranges[-1].end_frame + 1 if self.ranges else 0

    @property
    def duration(self) -> float:
        return self.total_frames / self.fps

    def scene_at_frame(self, frame: int) -> SceneRange[SceneT] | None:
        if frame < 0 or frame >= self.total_frames:
            return None
        return self.ranges[bisect_right(self._starts, frame) - 1]

    def locate(self, frame: int) -> tuple[SceneRange[SceneT], float] | None:
        """Active scene for a global frame and the scene-local time in seconds."""
        found = self.scene_at_frame(frame)
        if found is None:
            return None
        return found, (frame - found.start_frame) / self.fps

    def frame_at(self, seconds: float) -> int:
        return int(math.floor(seconds * self.fps + 1e-6))

    def locate_time(self, seconds: float) -> tuple[SceneRange[SceneT], float] | None:
        if seconds != seconds or seconds < 0:
            return None
        found = self.scene_at_frame(self.frame_at(seconds))
        if found is None:
            return None
        return found, max(0.0, seconds - found.start_frame / self.fps)
