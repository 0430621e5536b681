"""Per-frame scene state shared by the preview endpoints and the renderer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from sceneforge.timing.animation import AnimatedTransform, compute_transform
from sceneforge.timing.captions import NO_HIGHLIGHT, CaptionTrack
from sceneforge.timing.graph import RenderAsset, RenderScene
from sceneforge.timing.timeline import TimelineLayout


@dataclass(frozen=True)
class FrameLayer:
    asset: RenderAsset
    transform: AnimatedTransform


@dataclass(frozen=True)
class CaptionFrame:
    entry_index: int = NO_HIGHLIGHT
    words: tuple[str, ...] = ()
    highlighted: int = NO_HIGHLIGHT

    @property
    def text(self) -> str:
        return "".join(self.words)

    @property
    def visible(self) -> bool:
        return bool(self.words)


@dataclass(frozen=True)
class FrameState:
    scene_id: str
    scene_index: int
    local_time: float
    layers: tuple[FrameLayer, ...]
    caption: CaptionFrame


def caption_frame(track: CaptionTrack | None, local_time: float) -> CaptionFrame:
    if track is None:
        return CaptionFrame()
    entry_index = track.active_entry_index(local_time)
    if entry_index == NO_HIGHLIGHT:
        return CaptionFrame()
    first, last = track.entry_word_span(entry_index)
    word_index = track.active_word_index(local_time)
    highlighted = word_index - first if first <= word_index < last else NO_HIGHLIGHT
    return CaptionFrame(
        entry_index=entry_index,
        words=tuple(word.text for word in track.words[first:last]),
        highlighted=highlighted,
    )


def evaluate_scene(
    scene: RenderScene,
    local_time: float,
    track: CaptionTrack | None = None,
    scene_index: int = 0,
) -> FrameState:
    visuals = sorted((asset for asset in scene.assets if asset.kind != "audio"), key=lambda asset: asset.z_index)
    layers = tuple(FrameLayer(asset=asset, transform=compute_transform(asset, local_time, scene.duration)) for asset in visuals)
    return FrameState(
        scene_id=scene.id,
        scene_index=scene_index,
        local_time=local_time,
        layers=layers,
        caption=caption_frame(track, local_time),
    )


def evaluate_frame(
    layout: TimelineLayout[RenderScene],
    frame: int,
    tracks: Mapping[str, CaptionTrack] | None = None,
) -> FrameState | None:
    located = layout.locate(frame)
    if located is None:
        return None
    scene_range, local_time = located
    track = tracks.get(scene_range.scene.id) if tracks else None
    return evaluate_scene(scene_range.scene, local_time, track, scene_index=scene_range.index)
