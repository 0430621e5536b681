from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Mapping, Optional

import numpy as np
from moviepy import AudioFileClip, CompositeAudioClip, VideoClip, VideoFileClip
from PIL import Image, ImageDraw, ImageFont, ImageOps

from sceneforge.clients.media import MediaClient
from sceneforge.models.domain import CaptionStyle
from sceneforge.timing.captions import CaptionTrack
from sceneforge.timing.frame import CaptionFrame, FrameLayer, evaluate_frame
from sceneforge.timing.graph import RenderAsset, RenderScene, SceneGraph
from sceneforge.timing.timeline import TimelineLayout

PLACEHOLDER_COLOR = (24, 24, 24, 255)
HIGHLIGHT_COLOR = (255, 255, 255, 77)
REFERENCE_HEIGHT = 1080
LINE_HEIGHT = 1.4

FONT_CANDIDATES = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/usr/share/fonts/truetype/noto/NotoSans-Regular.ttf",
    "/System/Library/Fonts/Supplemental/Arial.ttf",
)
BOLD_FONT_CANDIDATES = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/usr/share/fonts/truetype/noto/NotoSans-Bold.ttf",
    "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
)


def hex_to_rgba(hex_color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    value = (hex_color or "").lstrip("#")
    if len(value) == 3:
        value = "".join(c * 2 for c in value)
    try:
        r, g, b = int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)
        if len(value) == 8:
            alpha = int(value[6:8], 16)
    except ValueError:
        return (0, 0, 0, alpha)
    return (r, g, b, alpha)


def _is_bold(weight: str | int) -> bool:
    if isinstance(weight, int) or str(weight).isdigit():
        return int(weight) >= 600
    return str(weight).lower() in ("bold", "semibold", "extrabold", "black")


@lru_cache(maxsize=32)
def load_font(size: int, bold: bool = False) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    for candidate in BOLD_FONT_CANDIDATES if bold else FONT_CANDIDATES:
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


@dataclass
class _Visual:
    """Decoded media for one visual asset, fitted to its box."""

    box: tuple[int, int]
    still: Image.Image | None = None
    video: Any = None

    def image_at(self, local_time: float) -> Image.Image:
        if self.video is not None:
            last = max(0.0, self.video.duration - 1.0 / (self.video.fps or 30))
            frame = self.video.get_frame(min(max(0.0, local_time), last))
            return ImageOps.fit(Image.fromarray(frame).convert("RGBA"), self.box, method=Image.Resampling.BILINEAR)
        if self.still is not None:
            return self.still
        return Image.new("RGBA", self.box, PLACEHOLDER_COLOR)


class MoviePyRenderer:
    """Paints a scene graph frame by frame and encodes it to MP4.

    Each output frame is resolved through the shared timeline and per-frame
    evaluation, so the video matches the preview snapshots exactly.
    """

    def __init__(self, media: MediaClient, logger: Optional[logging.Logger] = None) -> None:
        self.media = media
        self.log = logger or logging.getLogger(__name__)

    def render(
        self,
        graph: SceneGraph,
        output_path: str,
        fps: int,
        width: int,
        height: int,
        tracks: Mapping[str, CaptionTrack],
        progress: Callable[[int], None],
    ) -> str:
        layout = TimelineLayout(graph.scenes, fps)
        if layout.total_frames == 0:
            raise ValueError("scene graph has no scenes to render")
        self.log.info(
            "rendering video",
            extra={"scenes": len(graph.scenes), "frames": layout.total_frames, "fps": fps},
        )
        clips: list[Any] = []
        with tempfile.TemporaryDirectory(prefix="sceneforge-media-") as tmpdir:
            try:
                visuals = self._load_visuals(graph, tmpdir, width, height, clips)
                reported = [-1]

                def make_frame(t: float) -> np.ndarray:
                    frame = min(layout.frame_at(t), layout.total_frames - 1)
                    percent = frame * 100 // layout.total_frames
                    if percent > reported[0]:
                        reported[0] = percent
                        progress(percent)
                    return self.paint_frame(layout, frame, tracks, visuals, width, height)

                video = VideoClip(make_frame, duration=layout.duration)
                clips.append(video)
                audio = self._build_audio(layout, tmpdir, clips, visuals)
                if audio is not None:
                    video = video.with_audio(audio)
                video.write_videofile(
                    output_path,
                    fps=fps,
                    codec="libx264",
                    audio_codec="aac",
                    ffmpeg_params=["-pix_fmt", "yuv420p"],
                    logger=None,
                )
            finally:
                for clip in clips:
                    clip.close()
        progress(100)
        return output_path

    def paint_frame(
        self,
        layout: TimelineLayout[RenderScene],
        frame: int,
        tracks: Mapping[str, CaptionTrack],
        visuals: Mapping[str, _Visual],
        width: int,
        height: int,
    ) -> np.ndarray:
        canvas = Image.new("RGBA", (width, height), (0, 0, 0, 255))
        state = evaluate_frame(layout, frame, tracks)
        if state is None:
            return np.asarray(canvas.convert("RGB"))
        for layer in state.layers:
            visual = visuals.get(layer.asset.id)
            if visual is None:
                continue
            canvas = self._paint_layer(canvas, layer, visual.image_at(state.local_time), width, height)
        scene = layout.ranges[state.scene_index].scene
        if state.caption.visible:
            canvas = self._paint_caption(canvas, state.caption, CaptionStyle.model_validate(scene.caption_style))
        return np.asarray(canvas.convert("RGB"))

    def _paint_layer(
        self,
        canvas: Image.Image,
        layer: FrameLayer,
        image: Image.Image,
        width: int,
        height: int,
    ) -> Image.Image:
        transform = layer.transform
        if transform.opacity <= 0 or transform.scale <= 0:
            return canvas
        box_w, box_h = image.size
        left = transform.x / 100 * width
        top = transform.y / 100 * height
        center = (left + box_w / 2, top + box_h / 2)

        scaled = image
        if transform.scale != 1:
            size = (max(1, round(box_w * transform.scale)), max(1, round(box_h * transform.scale)))
            scaled = image.resize(size, Image.Resampling.BILINEAR)
        if transform.rotation:
            scaled = scaled.rotate(-transform.rotation, resample=Image.Resampling.BICUBIC, expand=True)
        if transform.opacity < 1:
            scaled = scaled.copy()
            alpha = scaled.getchannel("A").point(lambda value: int(value * transform.opacity))
            scaled.putalpha(alpha)

        overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        overlay.paste(scaled, (round(center[0] - scaled.width / 2), round(center[1] - scaled.height / 2)))
        return Image.alpha_composite(canvas, overlay)

    def _paint_caption(self, canvas: Image.Image, caption: CaptionFrame, style: CaptionStyle) -> Image.Image:
        factor = canvas.height / REFERENCE_HEIGHT * style.scale
        font_px = max(6, round(style.font_size * factor))
        font = load_font(font_px, _is_bold(style.font_weight))
        padding = round(style.padding * factor)
        max_width = max(1, round(style.max_width * factor) - 2 * padding)
        line_height = round(style.font_size * factor * LINE_HEIGHT)

        overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)
        lines = self._wrap(draw, caption.words, font, max_width)
        text_w = max((sum(width for _, _, width in line) for line in lines), default=0)
        box_w = text_w + 2 * padding
        box_h = line_height * len(lines) + 2 * padding

        anchor_x, anchor_y = style.anchor()
        left = round(anchor_x / 100 * canvas.width - box_w / 2)
        top = round(anchor_y / 100 * canvas.height - box_h / 2)

        alpha = round(255 * style.background_opacity * style.opacity)
        draw.rounded_rectangle(
            (left, top, left + box_w, top + box_h),
            radius=round(style.border_radius * factor),
            fill=hex_to_rgba(style.background_color, alpha),
            outline=hex_to_rgba(style.border_color, round(255 * style.opacity)) if style.border_width else None,
            width=round(style.border_width * factor),
        )
        text_color = hex_to_rgba(style.text_color, round(255 * style.opacity))
        for row, line in enumerate(lines):
            line_w = sum(width for _, _, width in line)
            if style.text_align == "left":
                x = left + padding
            elif style.text_align == "right":
                x = left + box_w - padding - line_w
            else:
                x = left + (box_w - line_w) / 2
            y = top + padding + row * line_height
            for index, token, token_w in line:
                if index == caption.highlighted and token.strip():
                    draw.rectangle((x, y, x + token_w, y + line_height), fill=HIGHLIGHT_COLOR)
                draw.text((x, y + (line_height - font_px) / 2), token, font=font, fill=text_color)
                x += token_w

        if style.rotation:
            center = (left + box_w / 2, top + box_h / 2)
            overlay = overlay.rotate(-style.rotation, resample=Image.Resampling.BICUBIC, center=center)
        return Image.alpha_composite(canvas, overlay)

    def _wrap(
        self,
        draw: ImageDraw.ImageDraw,
        tokens: tuple[str, ...],
        font: Any,
        max_width: int,
    ) -> list[list[tuple[int, str, float]]]:
        lines: list[list[tuple[int, str, float]]] = [[]]
        used = 0.0
        for index, token in enumerate(tokens):
            token_w = draw.textlength(token, font=font)
            if not token.strip():
                if lines[-1]:
                    lines[-1].append((index, token, token_w))
                    used += token_w
                continue
            if lines[-1] and used + token_w > max_width:
                while lines[-1] and not lines[-1][-1][1].strip():
                    used -= lines[-1].pop()[2]
                lines.append([])
                used = 0.0
            lines[-1].append((index, token, token_w))
            used += token_w
        while lines[-1] and not lines[-1][-1][1].strip():
            lines[-1].pop()
        return [line for line in lines if line] or [[]]

    def _load_visuals(
        self,
        graph: SceneGraph,
        tmpdir: str,
        width: int,
        height: int,
        clips: list[Any],
    ) -> dict[str, _Visual]:
        visuals: dict[str, _Visual] = {}
        for scene in graph.scenes:
            for asset in scene.assets:
                if asset.kind == "audio":
                    continue
                box = (max(1, round(asset.width / 100 * width)), max(1, round(asset.height / 100 * height)))
                visuals[asset.id] = self._load_visual(asset, box, tmpdir, clips)
        return visuals

    def _load_visual(self, asset: RenderAsset, box: tuple[int, int], tmpdir: str, clips: list[Any]) -> _Visual:
        path = self.media.download(asset.url, tmpdir, f"asset_{asset.id}")
        if path is None:
            self.log.warning("asset media unavailable, painting placeholder", extra={"asset_id": asset.id, "url": asset.url})
            return _Visual(box=box)
        try:
            if asset.kind == "video":
                clip = VideoFileClip(str(path), audio=asset.volume > 0)
                clips.append(clip)
                return _Visual(box=box, video=clip)
            with Image.open(path) as image:
                still = ImageOps.fit(image.convert("RGBA"), box, method=Image.Resampling.LANCZOS)
            return _Visual(box=box, still=still)
        except Exception as exc:  # pragma: no cover - decoder failures vary by codec
            self.log.warning(
                "asset media could not be decoded, painting placeholder",
                extra={"asset_id": asset.id, "url": asset.url, "error": str(exc)},
            )
            return _Visual(box=box)

    def _build_audio(
        self,
        layout: TimelineLayout[RenderScene],
        tmpdir: str,
        clips: list[Any],
        visuals: Mapping[str, _Visual],
    ) -> Any:
        layers: list[Any] = []
        for scene_range in layout.ranges:
            scene = scene_range.scene
            scene_start = scene_range.start_frame / layout.fps
            if scene.voice_url:
                voice = self._audio_clip(scene.voice_url, tmpdir, f"voice_{scene.id}", clips)
                if voice is not None:
                    layers.append(voice.subclipped(0, min(voice.duration, scene.duration)).with_start(scene_start))
            for index, url in enumerate(scene.sfx_urls):
                sfx = self._audio_clip(url, tmpdir, f"sfx_{scene.id}_{index}", clips)
                if sfx is not None:
                    layers.append(sfx.subclipped(0, min(sfx.duration, scene.duration)).with_start(scene_start))
            for layer in scene.audio:
                room = scene.duration - layer.start_time
                if room <= 0 or layer.volume <= 0:
                    continue
                clip = self._audio_clip(layer.url, tmpdir, f"audio_{layer.id}", clips)
                if clip is None:
                    continue
                clip = clip.subclipped(0, min(clip.duration, room)).with_volume_scaled(layer.volume)
                layers.append(clip.with_start(scene_start + layer.start_time))
            for asset in scene.assets:
                visual = visuals.get(asset.id)
                if asset.kind != "video" or asset.volume <= 0 or visual is None or visual.video is None:
                    continue
                sound = visual.video.audio
                if sound is None:
                    continue
                sound = sound.subclipped(0, min(sound.duration, scene.duration)).with_volume_scaled(asset.volume)
                layers.append(sound.with_start(scene_start))
        if not layers:
            return None
        return CompositeAudioClip(layers).with_duration(layout.duration)

    def _audio_clip(self, url: str, tmpdir: str, stem: str, clips: list[Any]) -> Any:
        path = self.media.download(url, tmpdir, stem)
        if path is None:
            return None
        try:
            clip = AudioFileClip(str(path))
        except Exception as exc:  # pragma: no cover - decoder failures vary by codec
            self.log.warning("audio could not be decoded, skipping", extra={"url": url, "error": str(exc)})
            return None
        clips.append(clip)
        return clip
