"""
Projects Router - CRUD endpoints for IDE projects
"""
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Request

from config.settings import Settings
from services.project_service import ProjectService
from utils.errors import ProjectError
from utils.responses import error_response, json_response, message_response
from utils.shared_utils import log_endpoint_event

projects_router = APIRouter(prefix="/api", tags=["projects"])


def get_project_service(request: Request) -> ProjectService:
    return request.app.state.project_service


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def _failure(endpoint: str, project_id: Optional[str], error: Exception, fallback_message: str):
    """Map an exception to a JSON error response, hiding unexpected detail"""
    if isinstance(error, ProjectError) and error.status_code < 500:
        return error_response(error.message, status=error.status_code)
    log_endpoint_event(endpoint, project_id, "error", {"error": repr(error)})
    return error_response(fallback_message, status=500)


@projects_router.get("/health")
async def health_check(
    settings: Settings = Depends(get_app_settings),
    service: ProjectService = Depends(get_project_service),
):
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
        "storage": service.backend,
    }


@projects_router.get("/projects")
async def list_projects(service: ProjectService = Depends(get_project_service)):
    """List project summaries (file contents excluded)"""
    try:
        projects = await service.list_projects()
    except Exception as e:
        return _failure("/projects", None, e, "Failed to fetch projects")
    return json_response([project.to_wire() for project in projects])


@projects_router.get("/projects/{project_id}")
async def get_project(project_id: str, service: ProjectService = Depends(get_project_service)):
    try:
        project = await service.get_project(project_id)
    except Exception as e:
        return _failure("/projects/{id}", project_id, e, "Failed to fetch project")
    return json_response(project.to_wire())


@projects_router.post("/projects")
async def create_project(
    body: Optional[Any] = Body(default=None),
    service: ProjectService = Depends(get_project_service),
):
    try:
        project = await service.create_project(body)
    except Exception as e:
        return _failure("/projects", None, e, "Failed to create project")
    return json_response(project.to_wire(), status=201)


@projects_router.put("/projects/{project_id}")
async def update_project(
    project_id: str,
    body: Optional[Any] = Body(default=None),
    service: ProjectService = Depends(get_project_service),
):
    try:
        project = await service.update_project(project_id, body)
    except Exception as e:
        return _failure("/projects/{id}", project_id, e, "Failed to update project")
    return json_response(project.to_wire())


@projects_router.delete("/projects/{project_id}")
async def delete_project(project_id: str, service: ProjectService = Depends(get_project_service)):
    try:
        await service.delete_project(project_id)
    except Exception as e:
        return _failure("/projects/{id}", project_id, e, "Failed to delete project")
    return message_response("Project deleted successfully")


@projects_router.post("/projects/{project_id}/files")
async def save_project_files(
    project_id: str,
    body: Optional[Any] = Body(default=None),
    service: ProjectService = Depends(get_project_service),
):
    """Replace the whole file map of a project"""
    try:
        project = await service.save_files(project_id, body)
    except Exception as e:
        return _failure("/projects/{id}/files", project_id, e, "Failed to save files")
    return message_response("Files saved successfully", project=project.to_wire())
