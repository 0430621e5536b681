from __future__ import annotations

import logging
import pathlib
from typing import Optional
from urllib.parse import urlparse

import httpx

from sceneforge.clients.storage import StorageClient
from sceneforge.timing.captions import CaptionTrack
from sceneforge.timing.graph import RenderScene, SceneGraph


class MediaClient:
    """Fetches caption files and media referenced by a scene graph."""

    def __init__(
        self,
        storage: StorageClient,
        caption_timeout: float = 10.0,
        media_timeout: float = 30.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.storage = storage
        self.caption_timeout = caption_timeout
        self.media_timeout = media_timeout
        self.log = logger or logging.getLogger(__name__)

    def fetch_text(self, url: str) -> str | None:
        key = self.storage.key_for_url(url)
        try:
            if key:
                return self.storage.download_bytes(key).decode("utf-8-sig")
            with httpx.Client(timeout=self.caption_timeout, follow_redirects=True) as client:
                response = client.get(url)
                response.raise_for_status()
                return response.text
        except (httpx.HTTPError, ValueError) as exc:
            self.log.warning("caption fetch failed", extra={"url": url, "error": str(exc)})
            return None

    def caption_track(self, scene: RenderScene) -> CaptionTrack:
        srt_text = self.fetch_text(scene.captions_url) if scene.captions_url else None
        track = CaptionTrack.from_srt(srt_text, scene.text, scene.duration)
        if scene.captions_url and track.estimated:
            self.log.warning(
                "captions unusable, falling back to estimated word timing",
                extra={"scene_id": scene.id, "url": scene.captions_url},
            )
        return track

    def caption_tracks(self, graph: SceneGraph) -> dict[str, CaptionTrack]:
        return {scene.id: self.caption_track(scene) for scene in graph.scenes}

    def download(self, url: str, target_dir: str | pathlib.Path, stem: str) -> pathlib.Path | None:
        if not url:
            return None
        key = self.storage.key_for_url(url)
        if key:
            local = self.storage.local_path(key)
            if local is not None:
                return local
        suffix = pathlib.PurePosixPath(urlparse(url).path).suffix or ".bin"
        target = pathlib.Path(target_dir) / f"{stem}{suffix}"
        try:
            if key:
                target.write_bytes(self.storage.download_bytes(key))
                return target
            with httpx.Client(timeout=self.media_timeout, follow_redirects=True) as client:
                with client.stream("GET", url) as response:
                    response.raise_for_status()
                    with open(target, "wb") as f:
                        for chunk in response.iter_bytes():
                            f.write(chunk)
        except (httpx.HTTPError, ValueError, OSError) as exc:
            self.log.warning("media download failed", extra={"url": url, "error": str(exc)})
            return None
        return target
