from __future__ import annotations

import logging
from pathlib import Path
from typing import NoReturn
from uuid import UUID

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.responses import FileResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles

from sceneforge.clients.media import MediaClient
from sceneforge.clients.storage import LOCAL_URL_PREFIX, StorageClient
from sceneforge.config import Settings, get_settings
from sceneforge.models.api import (
    AssetCreateRequest,
    AssetResponse,
    AssetUpdateRequest,
    CaptionGenerationRequest,
    CaptionGenerationResponse,
    FrameStateResponse,
    ProjectCreateRequest,
    ProjectListResponse,
    ProjectResponse,
    ProjectUpdateRequest,
    RenderJobResponse,
    RenderRequest,
    RenderStatusResponse,
    SceneCreateRequest,
    SceneGraphResponse,
    SceneResponse,
    SceneUpdateRequest,
)
from sceneforge.queue.queue import LocalQueue
from sceneforge.render.compositor import MoviePyRenderer
from sceneforge.services.project_service import ProjectService
from sceneforge.services.render_service import Renderer, RenderService
from sceneforge.storage.repository import NotFoundError, ProjectRepository, RenderJobRepository

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

_settings = get_settings()
app = FastAPI(title=_settings.app_name)

_projects = ProjectRepository()
_jobs = RenderJobRepository()
_storage: StorageClient | None = None
_media: MediaClient | None = None
_renderer: MoviePyRenderer | None = None
_project_service: ProjectService | None = None
_render_service: RenderService | None = None

Path(_settings.storage_path).mkdir(parents=True, exist_ok=True)
app.mount(LOCAL_URL_PREFIX, StaticFiles(directory=_settings.storage_path), name="storage")


def _raise_http(exc: ValueError) -> NoReturn:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def get_storage(settings: Settings = Depends(get_settings)) -> StorageClient:
    global _storage
    if _storage is None:
        _storage = StorageClient(
            root=settings.storage_path,
            bucket=settings.s3_bucket,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            endpoint_url=settings.s3_endpoint_url,
            region_name=settings.s3_region,
            public_url=settings.s3_public_url,
            addressing_style=settings.s3_addressing_style,
            public_base_url=settings.public_base_url,
            folder_prefix=settings.storage_folder_prefix,
        )
    return _storage


def get_media(
    settings: Settings = Depends(get_settings),
    storage: StorageClient = Depends(get_storage),
) -> MediaClient:
    global _media
    if _media is None:
        _media = MediaClient(
            storage=storage,
            caption_timeout=settings.caption_fetch_timeout,
            media_timeout=settings.media_fetch_timeout,
        )
    return _media


def get_renderer(media: MediaClient = Depends(get_media)) -> Renderer:
    global _renderer
    if _renderer is None:
        _renderer = MoviePyRenderer(media=media)
    return _renderer


def get_project_service(
    settings: Settings = Depends(get_settings),
    storage: StorageClient = Depends(get_storage),
    media: MediaClient = Depends(get_media),
) -> ProjectService:
    global _project_service
    if _project_service is None:
        _project_service = ProjectService(repo=_projects, settings=settings, storage=storage, media=media)
    return _project_service


def get_render_service(
    settings: Settings = Depends(get_settings),
    storage: StorageClient = Depends(get_storage),
    media: MediaClient = Depends(get_media),
    renderer: Renderer = Depends(get_renderer),
) -> RenderService:
    global _render_service
    if _render_service is None:
        service = RenderService(
            jobs=_jobs,
            projects=_projects,
            settings=settings,
            storage=storage,
            media=media,
            renderer=renderer,
        )
        service.bind_queue(LocalQueue(processor=service.process_job))
        _render_service = service
    return _render_service


@app.post("/projects", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreateRequest,
    service: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    return ProjectResponse(project=service.create_project(payload))


@app.get("/projects", response_model=ProjectListResponse)
def list_projects(service: ProjectService = Depends(get_project_service)) -> ProjectListResponse:
    return ProjectListResponse(items=service.list_projects())


@app.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(project_id: str, service: ProjectService = Depends(get_project_service)) -> ProjectResponse:
    try:
        project = service.get_project(project_id)
    except ValueError as exc:
        _raise_http(exc)
    return ProjectResponse(project=project)


@app.patch("/projects/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: str,
    payload: ProjectUpdateRequest,
    service: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    try:
        project = service.update_project(project_id, payload)
    except ValueError as exc:
        _raise_http(exc)
    return ProjectResponse(project=project)


@app.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(project_id: str, service: ProjectService = Depends(get_project_service)) -> Response:
    try:
        service.delete_project(project_id)
    except ValueError as exc:
        _raise_http(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/projects/{project_id}/scenes", response_model=SceneResponse, status_code=status.HTTP_201_CREATED)
def add_scene(
    project_id: str,
    payload: SceneCreateRequest,
    service: ProjectService = Depends(get_project_service),
) -> SceneResponse:
    try:
        scene = service.add_scene(project_id, payload)
    except ValueError as exc:
        _raise_http(exc)
    return SceneResponse(scene=scene)


@app.patch("/projects/{project_id}/scenes/{scene_id}", response_model=SceneResponse)
def update_scene(
    project_id: str,
    scene_id: str,
    payload: SceneUpdateRequest,
    service: ProjectService = Depends(get_project_service),
) -> SceneResponse:
    try:
        scene = service.update_scene(project_id, scene_id, payload)
    except ValueError as exc:
        _raise_http(exc)
    return SceneResponse(scene=scene)


@app.delete("/projects/{project_id}/scenes/{scene_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_scene(
    project_id: str,
    scene_id: str,
    service: ProjectService = Depends(get_project_service),
) -> Response:
    try:
        service.delete_scene(project_id, scene_id)
    except ValueError as exc:
        _raise_http(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post(
    "/projects/{project_id}/scenes/{scene_id}/assets",
    response_model=AssetResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_asset(
    project_id: str,
    scene_id: str,
    payload: AssetCreateRequest,
    service: ProjectService = Depends(get_project_service),
) -> AssetResponse:
    try:
        asset = service.add_asset(project_id, scene_id, payload)
    except ValueError as exc:
        _raise_http(exc)
    return AssetResponse(asset=asset)


@app.patch("/projects/{project_id}/scenes/{scene_id}/assets/{asset_id}", response_model=AssetResponse)
def update_asset(
    project_id: str,
    scene_id: str,
    asset_id: str,
    payload: AssetUpdateRequest,
    service: ProjectService = Depends(get_project_service),
) -> AssetResponse:
    try:
        asset = service.update_asset(project_id, scene_id, asset_id, payload)
    except ValueError as exc:
        _raise_http(exc)
    return AssetResponse(asset=asset)


@app.delete(
    "/projects/{project_id}/scenes/{scene_id}/assets/{asset_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_asset(
    project_id: str,
    scene_id: str,
    asset_id: str,
    service: ProjectService = Depends(get_project_service),
) -> Response:
    try:
        service.delete_asset(project_id, scene_id, asset_id)
    except ValueError as exc:
        _raise_http(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/projects/{project_id}/captions", response_model=CaptionGenerationResponse)
def generate_captions(
    project_id: str,
    payload: CaptionGenerationRequest,
    service: ProjectService = Depends(get_project_service),
) -> CaptionGenerationResponse:
    try:
        captions = service.generate_captions(project_id, payload)
    except ValueError as exc:
        _raise_http(exc)
    return CaptionGenerationResponse(captions=captions)


@app.get("/projects/{project_id}/scene-graph", response_model=SceneGraphResponse)
def get_scene_graph(project_id: str, service: ProjectService = Depends(get_project_service)) -> SceneGraphResponse:
    try:
        return service.describe_scene_graph(project_id)
    except ValueError as exc:
        _raise_http(exc)


@app.get("/projects/{project_id}/frame", response_model=FrameStateResponse)
def get_project_frame(
    project_id: str,
    time: float = Query(..., ge=0, description="Seconds from the start of the project"),
    service: ProjectService = Depends(get_project_service),
) -> FrameStateResponse:
    try:
        return service.project_frame(project_id, time)
    except ValueError as exc:
        _raise_http(exc)


@app.get("/projects/{project_id}/scenes/{scene_id}/frame", response_model=FrameStateResponse)
def get_scene_frame(
    project_id: str,
    scene_id: str,
    time: float = Query(..., description="Seconds from the start of the scene"),
    service: ProjectService = Depends(get_project_service),
) -> FrameStateResponse:
    try:
        return service.scene_frame(project_id, scene_id, time)
    except ValueError as exc:
        _raise_http(exc)


@app.post("/render", response_model=RenderJobResponse, status_code=status.HTTP_202_ACCEPTED)
def create_render(
    payload: RenderRequest,
    service: RenderService = Depends(get_render_service),
) -> RenderJobResponse:
    try:
        job = service.create_job(payload)
    except ValueError as exc:
        _raise_http(exc)
    return RenderJobResponse(job_id=job.id, status=job.status)


@app.get("/render/{job_id}/status", response_model=RenderStatusResponse)
def get_render_status(job_id: UUID, service: RenderService = Depends(get_render_service)) -> RenderStatusResponse:
    try:
        job = service.get_job(job_id)
    except ValueError as exc:
        _raise_http(exc)
    return RenderStatusResponse(
        job_id=job.id,
        status=job.status,
        progress=job.progress,
        result_url=job.result_url,
        error=job.error,
    )


@app.get("/render/download/{job_id}")
def download_render(job_id: UUID, service: RenderService = Depends(get_render_service)) -> Response:
    try:
        job = service.result_file(job_id)
    except ValueError as exc:
        _raise_http(exc)
    if job.result_path and Path(job.result_path).is_file():
        return FileResponse(job.result_path, media_type="video/mp4", filename=f"render_{job.id}.mp4")
    return RedirectResponse(job.result_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


def run() -> None:
    uvicorn.run(app, host=_settings.host, port=_settings.port)
