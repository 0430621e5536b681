from __future__ import annotations

import logging
import math
from typing import Any, Iterable
from urllib.parse import urlparse

from sceneforge.clients.storage import LOCAL_URL_PREFIX
from sceneforge.models.domain import AssetKind, Scene, SceneAsset
from sceneforge.timing.animation import AnimationType
from sceneforge.timing.easing import Easing
from sceneforge.timing.graph import AudioLayer, RenderAsset, RenderScene, SceneGraph

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = (".mp4", ".webm", ".mov")


def resolve_url(url: str | None, base_url: str) -> str | None:
    """Absolute URLs pass through; storage paths are resolved against ``base_url``."""
    if not url or not url.strip():
        return None
    value = url.strip()
    parsed = urlparse(value)
    if parsed.scheme or parsed.netloc:
        return value
    base = base_url.rstrip("/")
    if value.startswith("/"):
        return f"{base}{value}"
    return f"{base}{LOCAL_URL_PREFIX}/{value}"


def _number(value: Any, default: float, positive: bool = False) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number) or (positive and number <= 0):
        return default
    return number


def _unit(value: Any, default: float) -> float:
    return min(1.0, max(0.0, _number(value, default)))


def normalize_asset(asset: SceneAsset, base_url: str) -> RenderAsset:
    return RenderAsset(
        id=asset.id,
        kind=asset.type.value,
        url=resolve_url(asset.url, base_url) or "",
        name=asset.name,
        x=_number(asset.x, 0.0),
        y=_number(asset.y, 0.0),
        width=_number(asset.width, 100.0, positive=True),
        height=_number(asset.height, 100.0, positive=True),
        scale=_number(asset.scale, 1.0, positive=True),
        rotation=_number(asset.rotation, 0.0),
        opacity=_unit(asset.opacity, 1.0),
        z_index=int(_number(asset.z_index, 0.0)),
        volume=_unit(asset.volume, 0.0),
        animation_type=AnimationType.parse(asset.animation_type),
        animation_duration=_number(asset.animation_duration, 1.0, positive=True),
        animation_delay=max(0.0, _number(asset.animation_delay, 0.0)),
        animation_easing=Easing.parse(asset.animation_easing),
    )


def audio_layer(asset: SceneAsset, base_url: str) -> AudioLayer:
    return AudioLayer(
        id=asset.id,
        url=resolve_url(asset.url, base_url) or "",
        start_time=max(0.0, _number(asset.start_time, 0.0)),
        volume=_unit(asset.volume, 1.0),
    )


def legacy_media_asset(scene: Scene, url: str) -> RenderAsset:
    kind = AssetKind.VIDEO if urlparse(url).path.lower().endswith(VIDEO_EXTENSIONS) else AssetKind.IMAGE
    return RenderAsset(
        id=f"{scene.id}-media",
        kind=kind.value,
        url=url,
        name="media",
        animation_type=AnimationType.NONE,
    )


def build_scene(scene: Scene, base_url: str, default_duration: float = 5.0) -> RenderScene:
    duration = _number(scene.duration, default_duration, positive=True)
    if duration != scene.duration:
        logger.warning(
            "invalid scene duration replaced by default",
            extra={"scene_id": scene.id, "duration": scene.duration},
        )
    audio_assets = [asset for asset in scene.assets if asset.type is AssetKind.AUDIO]
    visuals = [normalize_asset(asset, base_url) for asset in scene.assets if asset.type is not AssetKind.AUDIO]
    media_url = resolve_url(scene.media_url, base_url)
    if not visuals and media_url:
        visuals = [legacy_media_asset(scene, media_url)]
    visuals.sort(key=lambda asset: asset.z_index)

    # The first audio asset is the voiceover; the rest play as extra layers.
    if audio_assets:
        voice_url = resolve_url(audio_assets[0].url, base_url)
    else:
        voice_url = resolve_url(scene.voice_url, base_url)

    return RenderScene(
        id=scene.id,
        text=scene.text,
        duration=duration,
        assets=tuple(visuals),
        audio=tuple(audio_layer(asset, base_url) for asset in audio_assets[1:]),
        voice_url=voice_url,
        captions_url=resolve_url(scene.captions_url, base_url),
        media_url=media_url,
        caption_style=scene.caption_style.model_dump(mode="json"),
        sfx_urls=tuple(url for url in (resolve_url(item, base_url) for item in scene.sfx_urls) if url),
        transition=scene.transition or "fade",
    )


def build_scene_graph(scenes: Iterable[Scene], base_url: str, default_duration: float = 5.0) -> SceneGraph:
    return SceneGraph(scenes=tuple(build_scene(scene, base_url, default_duration) for scene in scenes))
