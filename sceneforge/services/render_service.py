from __future__ import annotations

import logging
import os
import tempfile
import time
from typing import Callable, Optional, Protocol
from uuid import UUID

from sceneforge.clients.media import MediaClient
from sceneforge.clients.storage import StorageClient
from sceneforge.config import Settings
from sceneforge.models.api import RenderRequest
from sceneforge.models.domain import RenderJob, RenderJobStatus, RenderJobStatusHistory, utcnow
from sceneforge.queue.queue import BaseQueue
from sceneforge.services.scene_graph import build_scene_graph
from sceneforge.storage.repository import ProjectRepository, RenderJobRepository
from sceneforge.timing.captions import CaptionTrack
from sceneforge.timing.graph import SceneGraph


class Renderer(Protocol):
    def render(
        self,
        graph: SceneGraph,
        output_path: str,
        fps: int,
        width: int,
        height: int,
        tracks: dict[str, CaptionTrack],
        progress: Callable[[int], None],
    ) -> str: ...  # pragma: no cover


class RenderService:
    def __init__(
        self,
        jobs: RenderJobRepository,
        projects: ProjectRepository,
        settings: Settings,
        storage: StorageClient,
        media: MediaClient,
        renderer: Renderer,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.jobs = jobs
        self.projects = projects
        self.settings = settings
        self.storage = storage
        self.media = media
        self.renderer = renderer
        self.queue: BaseQueue | None = None
        self.log = logger or logging.getLogger(__name__)

    def bind_queue(self, queue: BaseQueue) -> None:
        self.queue = queue

    def create_job(self, payload: RenderRequest) -> RenderJob:
        project = self.projects.get(payload.project_id)
        if not project.scenes:
            raise ValueError("project has no scenes to render")
        job = RenderJob(
            project_id=project.id,
            resolution=(payload.resolution or self.settings.render_resolution).lower(),
            fps=payload.fps or self.settings.render_fps,
            format=(payload.format or self.settings.render_format).lower(),
            status_history=[RenderJobStatusHistory(status=RenderJobStatus.QUEUED, message="Render job enqueued")],
        )
        self.jobs.save(job)
        self.log.info("render job created", extra={"job_id": str(job.id), "project_id": project.id})
        if self.queue is not None:
            self.queue.enqueue(job.id)
        return job

    def get_job(self, job_id: UUID) -> RenderJob:
        return self.jobs.get(job_id)

    def result_file(self, job_id: UUID) -> RenderJob:
        job = self.jobs.get(job_id)
        if job.status is not RenderJobStatus.COMPLETED or not job.result_url:
            raise ValueError("Render is not completed yet")
        return job

    def process_job(self, job_id: UUID) -> None:
        job = self.jobs.get(job_id)
        try:
            self._update_status(job, RenderJobStatus.PROCESSING, "Building scene graph", progress=0)
            project = self.projects.get(job.project_id)
            graph = build_scene_graph(
                project.scenes,
                self.settings.public_base_url,
                self.settings.default_scene_duration,
            )
            tracks = self.media.caption_tracks(graph)
            width, height = job.dimensions
            self._update_status(job, RenderJobStatus.PROCESSING, "Rendering frames", progress=10)
            with tempfile.TemporaryDirectory(prefix="sceneforge-render-") as tmpdir:
                output_path = os.path.join(tmpdir, f"render_{job.id}.{job.format}")
                self.renderer.render(
                    graph,
                    output_path,
                    job.fps,
                    width,
                    height,
                    tracks,
                    self._progress_callback(job),
                )
                self._update_status(job, RenderJobStatus.PROCESSING, "Uploading render", progress=95)
                result_url = self.storage.upload_file(
                    f"renders/render_{job.id}.{job.format}",
                    output_path,
                    content_type="video/mp4",
                )
            key = self.storage.key_for_url(result_url)
            local = self.storage.local_path(key) if key else None
            job.result_path = str(local) if local is not None else None
            job.completed_at = utcnow()
            self._update_status(
                job,
                RenderJobStatus.COMPLETED,
                "Render completed",
                progress=100,
                result_url=result_url,
            )
            self.log.info("render job completed", extra={"job_id": str(job.id), "url": result_url})
        except Exception as exc:
            self.log.exception("render job failed", extra={"job_id": str(job_id)})
            job.completed_at = utcnow()
            self._update_status(job, RenderJobStatus.FAILED, "Render failed", progress=job.progress, error=str(exc))

    def _progress_callback(self, job: RenderJob) -> Callable[[int], None]:
        started = time.monotonic()
        timeout = self.settings.render_timeout_seconds

        def report(percent: int) -> None:
            if timeout and time.monotonic() - started > timeout:
                raise TimeoutError(f"render exceeded {timeout} seconds")
            # Frame rendering owns 10..90; upload and bookkeeping take the rest.
            scaled = 10 + int(max(0, min(100, percent)) * 0.8)
            if scaled > job.progress:
                job.progress = scaled
                job.updated_at = utcnow()
                self.jobs.save(job)

        return report

    def _update_status(
        self,
        job: RenderJob,
        status: RenderJobStatus,
        message: str,
        progress: int,
        result_url: str | None = None,
        error: str | None = None,
    ) -> None:
        job.status = status
        job.progress = progress
        job.status_history.append(RenderJobStatusHistory(status=status, message=message, progress=progress))
        job.updated_at = utcnow()
        if result_url:
            job.result_url = result_url
        if error:
            job.error = error
        self.jobs.save(job)
