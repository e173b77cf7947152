"""
Project API client with local-storage fallback.

Every call goes to the HTTP API first. When the call fails (network error or
non-2xx answer) the same operation is applied to ``LocalStorage`` instead,
under the ``projects`` summary list and ``project-<id>`` file-map keys. The
local copy is a cache for offline use, never the source of truth.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from client.local_storage import PROJECTS_KEY, LocalStorage, project_files_key
from models.project import Project, ProjectMetadata, ProjectSummary

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:5000/api"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProjectClient:
    def __init__(
        self,
        storage: LocalStorage,
        base_url: str = DEFAULT_API_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.storage = storage
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "ProjectClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        response = await self._http.request(method, path, json=json)
        response.raise_for_status()
        return response.json()

    # Local cache helpers

    async def _local_summaries(self) -> List[Dict[str, Any]]:
        projects = await self.storage.get_json(PROJECTS_KEY, [])
        return projects if isinstance(projects, list) else []

    async def _save_local_summaries(self, projects: List[Dict[str, Any]]) -> None:
        await self.storage.set_json(PROJECTS_KEY, projects)

    # Operations

    async def get_projects(self) -> List[ProjectSummary]:
        try:
            data = await self._request("GET", "projects")
        except httpx.HTTPError as e:
            logger.error(f"Error fetching projects: {e}")
            data = await self._local_summaries()
        return [ProjectSummary.model_validate(item) for item in data]

    async def get_project(self, project_id: str) -> Optional[Project]:
        try:
            data = await self._request("GET", f"projects/{project_id}")
            return Project.model_validate(data)
        except httpx.HTTPError as e:
            logger.error(f"Error fetching project: {e}")

        files = await self.storage.get_json(project_files_key(project_id))
        if files is None:
            return None
        for summary in await self._local_summaries():
            if summary.get("id") == project_id:
                return Project.model_validate({**summary, "files": files})
        return None

    async def create_project(
        self,
        name: str,
        files: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Project:
        files = dict(files or {})
        metadata_wire = ProjectMetadata.from_wire(metadata).model_dump()
        try:
            data = await self._request(
                "POST",
                "projects",
                json={"name": name, "files": files, "metadata": metadata_wire},
            )
            return Project.model_validate(data)
        except httpx.HTTPError as e:
            logger.error(f"Error creating project: {e}")

        now = _now_iso()
        project = Project.model_validate({
            "id": str(uuid.uuid4()),
            "name": name,
            "files": files,
            "createdAt": now,
            "updatedAt": now,
            "metadata": metadata_wire,
        })
        projects = await self._local_summaries()
        projects.append(project.summary().to_wire())
        await self._save_local_summaries(projects)
        await self.storage.set_json(project_files_key(project.id), files)
        return project

    async def update_project(self, project_id: str, updates: Dict[str, Any]) -> Optional[Project]:
        try:
            data = await self._request("PUT", f"projects/{project_id}", json=updates)
            return Project.model_validate(data)
        except httpx.HTTPError as e:
            logger.error(f"Error updating project: {e}")

        projects = await self._local_summaries()
        for index, summary in enumerate(projects):
            if summary.get("id") != project_id:
                continue
            changed = dict(summary)
            if updates.get("name"):
                changed["name"] = updates["name"]
            if updates.get("metadata") is not None:
                changed["metadata"] = ProjectMetadata.from_wire(updates["metadata"]).model_dump()
            changed["updatedAt"] = _now_iso()
            projects[index] = changed
            await self._save_local_summaries(projects)

            files_key = project_files_key(project_id)
            if updates.get("files") is not None:
                await self.storage.set_json(files_key, updates["files"])
            files = await self.storage.get_json(files_key, {})
            return Project.model_validate({**changed, "files": files})
        return None

    async def save_project_files(self, project_id: str, files: Dict[str, str]) -> bool:
        try:
            await self._request("POST", f"projects/{project_id}/files", json={"files": files})
            return True
        except httpx.HTTPError as e:
            logger.error(f"Error saving files: {e}")

        await self.storage.set_json(project_files_key(project_id), files)
        projects = await self._local_summaries()
        for summary in projects:
            if summary.get("id") == project_id:
                summary["updatedAt"] = _now_iso()
                await self._save_local_summaries(projects)
                break
        return True

    async def delete_project(self, project_id: str) -> bool:
        try:
            await self._request("DELETE", f"projects/{project_id}")
            return True
        except httpx.HTTPError as e:
            logger.error(f"Error deleting project: {e}")

        projects = [p for p in await self._local_summaries() if p.get("id") != project_id]
        await self._save_local_summaries(projects)
        await self.storage.remove_item(project_files_key(project_id))
        return True
