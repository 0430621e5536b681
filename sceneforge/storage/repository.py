from __future__ import annotations

from threading import Lock
from typing import Dict, List
from uuid import UUID

from sceneforge.models.domain import Project, RenderJob


class NotFoundError(ValueError):
    """Raised when a project, scene, asset or render job does not exist."""


class ProjectRepository:
    """Projects with their scenes and assets embedded.

    Records are replaced whole on save and handed out as deep copies, so a
    render or preview working on a copy never sees an edit half applied.
    """

    def __init__(self) -> None:
        self._projects: Dict[str, Project] = {}
        self._lock = Lock()

    def save(self, project: Project) -> Project:
        with self._lock:
            self._projects[project.id] = project.model_copy(deep=True)
        return project

    def get(self, project_id: str) -> Project:
        with self._lock:
            project = self._projects.get(project_id)
            if project is None:
                raise NotFoundError("Project not found")
            return project.model_copy(deep=True)

    def delete(self, project_id: str) -> None:
        with self._lock:
            if self._projects.pop(project_id, None) is None:
                raise NotFoundError("Project not found")

    def list(self) -> List[Project]:
        with self._lock:
            return [project.model_copy(deep=True) for project in self._projects.values()]


class RenderJobRepository:
    def __init__(self) -> None:
        self._jobs: Dict[UUID, RenderJob] = {}
        self._lock = Lock()

    def save(self, job: RenderJob) -> RenderJob:
        with self._lock:
            self._jobs[job.id] = job.model_copy(deep=True)
        return job

    def get(self, job_id: UUID) -> RenderJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError("Render job not found")
            return job.model_copy(deep=True)

    def list(self) -> List[RenderJob]:
        with self._lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]
