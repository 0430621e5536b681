"""Renderer-ready scene graph.

Values here are produced once per render or preview request by the scene
graph builder and are never mutated afterwards. Every field is populated, so
the timing functions never branch on missing data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sceneforge.timing.animation import AnimationType
from sceneforge.timing.easing import Easing


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass(frozen=True)
class RenderAsset:
    id: str
    kind: str
    url: str
    name: str = ""
    x: float = 0.0
    y: float = 0.0
    width: float = 100.0
    height: float = 100.0
    scale: float = 1.0
    rotation: float = 0.0
    opacity: float = 1.0
    z_index: int = 0
    volume: float = 0.0
    animation_type: AnimationType = AnimationType.FADE_IN
    animation_duration: float = 1.0
    animation_delay: float = 0.0
    animation_easing: Easing = Easing.EASE_OUT

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind,
            "url": self.url,
            "name": self.name,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "scale": self.scale,
            "rotation": self.rotation,
            "opacity": self.opacity,
            "zIndex": self.z_index,
            "volume": self.volume,
            "animationType": self.animation_type.value,
            "animationDuration": self.animation_duration,
            "animationDelay": self.animation_delay,
            "animationEasing": self.animation_easing.value,
        }


@dataclass(frozen=True)
class AudioLayer:
    id: str
    url: str
    start_time: float = 0.0
    volume: float = 1.0

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "url": self.url, "startTime": self.start_time, "volume": self.volume}


@dataclass(frozen=True)
class RenderScene:
    id: str
    text: str
    duration: float
    assets: tuple[RenderAsset, ...] = ()
    audio: tuple[AudioLayer, ...] = ()
    voice_url: str | None = None
    captions_url: str | None = None
    media_url: str | None = None
    caption_style: dict[str, Any] = field(default_factory=dict)
    sfx_urls: tuple[str, ...] = ()
    transition: str = "fade"

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "duration": self.duration,
            "assets": [asset.to_payload() for asset in self.assets],
            "audio": [layer.to_payload() for layer in self.audio],
            "mediaUrl": self.media_url,
            "voiceUrl": self.voice_url,
            "captionsUrl": self.captions_url,
            "captionStyle": {_camel(key): value for key, value in self.caption_style.items()},
            "sfxUrls": list(self.sfx_urls),
            "transition": self.transition,
        }


@dataclass(frozen=True)
class SceneGraph:
    scenes: tuple[RenderScene, ...]

    @property
    def duration(self) -> float:
        return sum(scene.duration for scene in self.scenes)

    def to_payload(self) -> dict[str, Any]:
        return {"scenes": [scene.to_payload() for scene in self.scenes]}
