from __future__ import annotations

import logging
from typing import Optional

from sceneforge.clients.media import MediaClient
from sceneforge.clients.storage import StorageClient
from sceneforge.config import Settings
from sceneforge.models.api import (
    AssetCreateRequest,
    AssetUpdateRequest,
    CaptionFramePayload,
    CaptionGenerationRequest,
    FrameStateResponse,
    LayerPayload,
    ProjectCreateRequest,
    ProjectUpdateRequest,
    SceneCreateRequest,
    SceneGraphResponse,
    SceneUpdateRequest,
    TransformPayload,
)
from sceneforge.models.domain import AssetKind, CaptionStyle, Project, Scene, SceneAsset, utcnow
from sceneforge.services.scene_graph import build_scene, build_scene_graph
from sceneforge.storage.repository import NotFoundError, ProjectRepository
from sceneforge.timing.animation import default_animation
from sceneforge.timing.captions import CaptionTrack, generate_srt_from_text
from sceneforge.timing.frame import FrameState, evaluate_scene
from sceneforge.timing.graph import SceneGraph
from sceneforge.timing.timeline import TimelineLayout


class ProjectService:
    def __init__(
        self,
        repo: ProjectRepository,
        settings: Settings,
        storage: StorageClient,
        media: MediaClient,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.repo = repo
        self.settings = settings
        self.storage = storage
        self.media = media
        self.log = logger or logging.getLogger(__name__)

    def create_project(self, payload: ProjectCreateRequest) -> Project:
        project = Project(title=payload.title.strip(), prompt=payload.prompt, user_id=payload.user_id)
        self.repo.save(project)
        self.log.info("project created", extra={"project_id": project.id})
        return project

    def list_projects(self) -> list[Project]:
        projects = self.repo.list()
        projects.sort(key=lambda project: project.created_at, reverse=True)
        return projects

    def get_project(self, project_id: str) -> Project:
        return self.repo.get(project_id)

    def update_project(self, project_id: str, payload: ProjectUpdateRequest) -> Project:
        project = self.repo.get(project_id)
        if payload.title is not None:
            project.title = payload.title.strip()
        if payload.prompt is not None:
            project.prompt = payload.prompt
        if payload.scene_order is not None:
            by_id = {scene.id: scene for scene in project.scenes}
            if sorted(payload.scene_order) != sorted(by_id):
                raise ValueError("scene_order must list every scene of the project exactly once")
            project.scenes = [by_id[scene_id] for scene_id in payload.scene_order]
        return self._save(project)

    def delete_project(self, project_id: str) -> None:
        self.repo.delete(project_id)
        self.log.info("project deleted", extra={"project_id": project_id})

    def add_scene(self, project_id: str, payload: SceneCreateRequest) -> Scene:
        project = self.repo.get(project_id)
        style = payload.caption_style.apply(CaptionStyle()) if payload.caption_style else CaptionStyle()
        scene = Scene(
            project_id=project.id,
            text=payload.text,
            duration=payload.duration,
            keywords=payload.keywords,
            media_url=payload.media_url,
            voice_url=payload.voice_url,
            captions_url=payload.captions_url,
            caption_style=style,
            sfx_urls=payload.sfx_urls,
            transition=payload.transition,
        )
        position = len(project.scenes) if payload.position is None else min(payload.position, len(project.scenes))
        project.scenes.insert(position, scene)
        self._save(project)
        return self._scene(project, scene.id)

    def update_scene(self, project_id: str, scene_id: str, payload: SceneUpdateRequest) -> Scene:
        project = self.repo.get(project_id)
        scene = self._scene(project, scene_id)
        changes = payload.model_dump(exclude_unset=True, exclude={"caption_style"})
        if payload.caption_style is not None:
            changes["caption_style"] = payload.caption_style.apply(scene.caption_style)
        if "text" in changes and changes["text"] != scene.text and "captions_url" not in changes:
            # Caption timing was derived from the old narration.
            changes["captions_url"] = None
        changes["updated_at"] = utcnow()
        self._replace_scene(project, Scene.model_validate({**scene.model_dump(), **changes}))
        self._save(project)
        return self._scene(project, scene_id)

    def delete_scene(self, project_id: str, scene_id: str) -> None:
        project = self.repo.get(project_id)
        self._scene(project, scene_id)
        project.scenes = [scene for scene in project.scenes if scene.id != scene_id]
        self._save(project)

    def add_asset(self, project_id: str, scene_id: str, payload: AssetCreateRequest) -> SceneAsset:
        project = self.repo.get(project_id)
        scene = self._scene(project, scene_id)
        values = payload.model_dump(exclude_none=True)
        if payload.type is not AssetKind.AUDIO and payload.animation_type is None:
            animation = default_animation(payload.type.value)
            values.setdefault("animation_type", animation.type.value)
            values.setdefault("animation_duration", animation.duration)
            values.setdefault("animation_delay", animation.delay)
            values.setdefault("animation_easing", animation.easing.value)
        if payload.type is not AssetKind.AUDIO and "z_index" not in values:
            values["z_index"] = max((asset.z_index for asset in scene.assets), default=-1) + 1
        asset = SceneAsset(scene_id=scene.id, **values)
        assets = [*scene.assets, asset]
        self._replace_scene(project, scene.model_copy(update={"assets": assets, "updated_at": utcnow()}))
        self._save(project)
        return asset

    def update_asset(self, project_id: str, scene_id: str, asset_id: str, payload: AssetUpdateRequest) -> SceneAsset:
        project = self.repo.get(project_id)
        scene = self._scene(project, scene_id)
        current = self._asset(scene, asset_id)
        changes = payload.model_dump(exclude_unset=True)
        changes["updated_at"] = utcnow()
        updated = SceneAsset.model_validate({**current.model_dump(), **changes})
        assets = [updated if asset.id == asset_id else asset for asset in scene.assets]
        self._replace_scene(project, scene.model_copy(update={"assets": assets, "updated_at": utcnow()}))
        self._save(project)
        return updated

    def delete_asset(self, project_id: str, scene_id: str, asset_id: str) -> None:
        project = self.repo.get(project_id)
        scene = self._scene(project, scene_id)
        self._asset(scene, asset_id)
        assets = [asset for asset in scene.assets if asset.id != asset_id]
        self._replace_scene(project, scene.model_copy(update={"assets": assets, "updated_at": utcnow()}))
        self._save(project)

    def generate_captions(self, project_id: str, payload: CaptionGenerationRequest) -> dict[str, str]:
        project = self.repo.get(project_id)
        wanted = set(payload.scene_ids) if payload.scene_ids else None
        if wanted:
            missing = wanted - {scene.id for scene in project.scenes}
            if missing:
                raise NotFoundError(f"Scene not found: {sorted(missing)[0]}")
        max_words = payload.max_words_per_caption or self.settings.max_words_per_caption
        captions: dict[str, str] = {}
        for scene in project.scenes:
            if wanted is not None and scene.id not in wanted:
                continue
            srt_text = generate_srt_from_text(scene.text, scene.duration, max_words_per_caption=max_words)
            if not srt_text:
                self.log.info("scene has no narration, skipping captions", extra={"scene_id": scene.id})
                continue
            url = self.storage.upload_text(
                f"captions/{project.id}/{scene.id}.srt",
                srt_text,
                content_type="application/x-subrip; charset=utf-8",
            )
            self._replace_scene(project, scene.model_copy(update={"captions_url": url, "updated_at": utcnow()}))
            captions[scene.id] = url
        self._save(project)
        self.log.info("captions generated", extra={"project_id": project.id, "scenes": len(captions)})
        return captions

    def scene_graph(self, project_id: str) -> SceneGraph:
        project = self.repo.get(project_id)
        return build_scene_graph(project.scenes, self.settings.public_base_url, self.settings.default_scene_duration)

    def describe_scene_graph(self, project_id: str) -> SceneGraphResponse:
        graph = self.scene_graph(project_id)
        width, height = self._dimensions()
        layout = TimelineLayout(graph.scenes, self.settings.render_fps)
        return SceneGraphResponse(
            fps=self.settings.render_fps,
            width=width,
            height=height,
            total_frames=layout.total_frames,
            scenes=graph.to_payload()["scenes"],
        )

    def project_frame(self, project_id: str, time: float) -> FrameStateResponse:
        graph = self.scene_graph(project_id)
        if not graph.scenes:
            raise ValueError("project has no scenes")
        layout = TimelineLayout(graph.scenes, self.settings.render_fps)
        located = layout.locate_time(time)
        if located is None:
            raise ValueError("time is outside the project timeline")
        scene_range, local_time = located
        track = self.media.caption_track(scene_range.scene)
        state = evaluate_scene(scene_range.scene, local_time, track, scene_index=scene_range.index)
        return self._frame_payload(state, track, time, layout.frame_at(time))

    def scene_frame(self, project_id: str, scene_id: str, time: float) -> FrameStateResponse:
        project = self.repo.get(project_id)
        index = next((idx for idx, scene in enumerate(project.scenes) if scene.id == scene_id), None)
        if index is None:
            raise NotFoundError("Scene not found")
        scene = build_scene(project.scenes[index], self.settings.public_base_url, self.settings.default_scene_duration)
        track = self.media.caption_track(scene)
        state = evaluate_scene(scene, time, track, scene_index=index)
        return self._frame_payload(state, track, time, None)

    def _frame_payload(
        self,
        state: FrameState,
        track: CaptionTrack,
        time: float,
        frame: int | None,
    ) -> FrameStateResponse:
        layers = [
            LayerPayload(
                asset_id=layer.asset.id,
                type=layer.asset.kind,
                url=layer.asset.url,
                z_index=layer.asset.z_index,
                width=layer.asset.width,
                height=layer.asset.height,
                transform=TransformPayload(
                    x=layer.transform.x,
                    y=layer.transform.y,
                    scale=layer.transform.scale,
                    rotation=layer.transform.rotation,
                    opacity=layer.transform.opacity,
                ),
            )
            for layer in state.layers
        ]
        caption = CaptionFramePayload(
            text=state.caption.text,
            words=list(state.caption.words),
            highlighted_index=state.caption.highlighted,
            entry_index=state.caption.entry_index,
            estimated=track.estimated,
        )
        return FrameStateResponse(
            scene_id=state.scene_id,
            scene_index=state.scene_index,
            time=time,
            local_time=state.local_time,
            frame=frame,
            layers=layers,
            caption=caption,
        )

    def _dimensions(self) -> tuple[int, int]:
        width, _, height = self.settings.render_resolution.lower().partition("x")
        return int(width), int(height)

    def _save(self, project: Project) -> Project:
        for order, scene in enumerate(project.scenes):
            scene.order = order
        project.updated_at = utcnow()
        return self.repo.save(project)

    def _scene(self, project: Project, scene_id: str) -> Scene:
        scene = project.find_scene(scene_id)
        if scene is None:
            raise NotFoundError("Scene not found")
        return scene

    def _asset(self, scene: Scene, asset_id: str) -> SceneAsset:
        asset = next((item for item in scene.assets if item.id == asset_id), None)
        if asset is None:
            raise NotFoundError("Asset not found")
        return asset

    def _replace_scene(self, project: Project, updated: Scene) -> None:
        project.scenes = [updated if scene.id == updated.id else scene for scene in project.scenes]
