"""
Project Service - request-level operations over the project store
"""
import logging
from typing import Any, List, Optional

from pydantic import ValidationError as PydanticValidationError

from crud.project_store import ProjectStore
from models.project import Project, ProjectCreate, ProjectFiles, ProjectSummary, ProjectUpdate
from utils.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class ProjectService:
    """Service class for project CRUD business logic"""

    def __init__(self, store: ProjectStore):
        self.store = store

    @property
    def backend(self) -> str:
        return self.store.backend

    async def list_projects(self) -> List[ProjectSummary]:
        return await self.store.list()

    async def get_project(self, project_id: str) -> Project:
        project = await self.store.get(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    async def create_project(self, body: Optional[Any]) -> Project:
        """
        Create a project from a raw JSON body.

        ``name`` is required and must not be blank; ``files`` defaults to an
        empty map and ``metadata`` is merged over the defaults.
        """
        if not isinstance(body, dict) or not _is_present(body.get("name")):
            raise ValidationError("Project name is required")
        try:
            request = ProjectCreate.model_validate(body)
        except PydanticValidationError as e:
            logger.info(f"Rejected project create: {e.error_count()} invalid field(s)")
            raise ValidationError("Invalid project data") from e

        project = await self.store.create(request.name, request.files, request.metadata)
        logger.info(f"Project created: {project.id} ({project.name!r}) on {self.backend} storage")
        return project

    async def update_project(self, project_id: str, body: Optional[Any]) -> Project:
        """Apply a partial update; an empty body only refreshes ``updatedAt``"""
        if body is None:
            body = {}
        if not isinstance(body, dict):
            raise ValidationError("Invalid project data")
        try:
            changes = ProjectUpdate.model_validate(body)
        except PydanticValidationError as e:
            logger.info(f"Rejected update for {project_id}: {e.error_count()} invalid field(s)")
            raise ValidationError("Invalid project data") from e

        project = await self.store.update(project_id, changes)
        if project is None:
            raise NotFoundError("Project not found")
        logger.info(f"Project updated: {project_id}")
        return project

    async def delete_project(self, project_id: str) -> None:
        deleted = await self.store.delete(project_id)
        if not deleted:
            raise NotFoundError("Project not found")
        logger.info(f"Project deleted: {project_id}")

    async def save_files(self, project_id: str, body: Optional[Any]) -> Project:
        if not isinstance(body, dict) or not isinstance(body.get("files"), dict):
            raise ValidationError("Files data is required")
        try:
            payload = ProjectFiles.model_validate(body)
        except PydanticValidationError as e:
            raise ValidationError("Files data is required") from e

        project = await self.store.replace_files(project_id, payload.files)
        if project is None:
            raise NotFoundError("Project not found")
        logger.info(f"Files saved for project {project_id}: {len(project.files)} file(s)")
        return project


def _is_present(name: Any) -> bool:
    return isinstance(name, str) and bool(name.strip())
