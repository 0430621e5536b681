from pathlib import Path

from sceneforge.clients.media import MediaClient
from sceneforge.clients.storage import StorageClient
from sceneforge.config import Settings
from sceneforge.models.api import RenderRequest
from sceneforge.models.domain import Project, RenderJobStatus, Scene
from sceneforge.services.render_service import RenderService
from sceneforge.storage.repository import ProjectRepository, RenderJobRepository


class WritingRenderer:
    def render(self, graph, output_path, fps, width, height, tracks, progress):
        Path(output_path).write_bytes(b"rendered")
        progress(100)
        return output_path


def make_service(tmp_path, folder_prefix=""):
    settings = Settings(storage_path=str(tmp_path), storage_folder_prefix=folder_prefix)
    storage = StorageClient(root=tmp_path, folder_prefix=folder_prefix)
    projects = ProjectRepository()
    project = Project(title="Prefixed", scenes=[Scene(project_id="p", text="One scene", duration=1)])
    projects.save(project)
    service = RenderService(
        jobs=RenderJobRepository(),
        projects=projects,
        settings=settings,
        storage=storage,
        media=MediaClient(storage=storage),
        renderer=WritingRenderer(),
    )
    return service, project


def test_local_result_path_honours_folder_prefix(tmp_path):
    service, project = make_service(tmp_path, folder_prefix="tenant-a")
    job = service.create_job(RenderRequest(project_id=project.id))

    service.process_job(job.id)

    done = service.get_job(job.id)
    assert done.status is RenderJobStatus.COMPLETED
    assert done.result_url == f"/storage/tenant-a/renders/render_{job.id}.mp4"
    assert done.result_path == str((tmp_path / "tenant-a" / "renders" / f"render_{job.id}.mp4").resolve())
    assert Path(done.result_path).read_bytes() == b"rendered"


def test_local_result_path_without_prefix(tmp_path):
    service, project = make_service(tmp_path)
    job = service.create_job(RenderRequest(project_id=project.id))

    service.process_job(job.id)

    done = service.get_job(job.id)
    assert done.result_path == str((tmp_path / "renders" / f"render_{job.id}.mp4").resolve())
