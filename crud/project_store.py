"""
ProjectStore implementations for database and in-memory persistence
"""

import abc
import asyncio
import copy
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from config.settings import Settings
from database import create_engine, create_session_factory, init_db
from database_models import ProjectRecord
from models.project import Project, ProjectMetadata, ProjectSummary, ProjectUpdate
from utils.errors import StorageFault, ValidationError

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def next_timestamp(previous: datetime) -> datetime:
    """Current time, nudged past ``previous`` when the clock has not advanced"""
    now = utc_now()
    if previous.tzinfo is None:
        previous = previous.replace(tzinfo=timezone.utc)
    if now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def new_project_id() -> str:
    return str(uuid.uuid4())


def validate_files(files: Any) -> Dict[str, str]:
    if not isinstance(files, dict):
        raise ValidationError("Files data is required")
    for path, content in files.items():
        if not isinstance(path, str) or not isinstance(content, str):
            raise ValidationError("Files data is required")
    return dict(files)


class ProjectStore(abc.ABC):
    """
    Storage contract for Project records.

    Lookup misses return ``None`` (or ``False`` for delete); they are normal
    results, not errors. Backend failures surface as ``StorageFault``.
    """

    backend = "unknown"

    @abc.abstractmethod
    async def list(self) -> List[ProjectSummary]:
        ...

    @abc.abstractmethod
    async def get(self, project_id: str) -> Optional[Project]:
        ...

    @abc.abstractmethod
    async def create(
        self,
        name: str,
        files: Optional[Dict[str, str]] = None,
        metadata: Optional[ProjectMetadata] = None,
    ) -> Project:
        ...

    @abc.abstractmethod
    async def update(self, project_id: str, changes: ProjectUpdate) -> Optional[Project]:
        ...

    @abc.abstractmethod
    async def replace_files(self, project_id: str, files: Dict[str, str]) -> Optional[Project]:
        ...

    @abc.abstractmethod
    async def delete(self, project_id: str) -> bool:
        ...

    async def close(self) -> None:
        return None

    @staticmethod
    def _build_project(
        name: str,
        files: Optional[Dict[str, str]],
        metadata: Optional[ProjectMetadata],
    ) -> Project:
        if not name or not name.strip():
            raise ValidationError("Project name is required")
        now = utc_now()
        return Project(
            id=new_project_id(),
            name=name,
            files=validate_files(files if files is not None else {}),
            created_at=now,
            updated_at=now,
            metadata=metadata.model_copy(deep=True) if metadata is not None else ProjectMetadata(),
        )

    @staticmethod
    def _apply_update(project: Project, changes: ProjectUpdate) -> Project:
        if changes.name is not None:
            project.name = changes.name
        if changes.files is not None:
            project.files = validate_files(changes.files)
        if changes.metadata is not None:
            project.metadata = changes.metadata.model_copy(deep=True)
        project.updated_at = next_timestamp(project.updated_at)
        return project


class InMemoryProjectStore(ProjectStore):
    """
    Process-local store keyed by project id.
    Lives only as long as the process; all access goes through one asyncio lock.
    """

    backend = "memory"

    def __init__(self):
        self._projects: Dict[str, Project] = {}
        self._lock = asyncio.Lock()

    async def list(self) -> List[ProjectSummary]:
        async with self._lock:
            return [project.summary() for project in self._projects.values()]

    async def get(self, project_id: str) -> Optional[Project]:
        async with self._lock:
            project = self._projects.get(project_id)
            return project.model_copy(deep=True) if project else None

    async def create(self, name, files=None, metadata=None) -> Project:
        project = self._build_project(name, files, metadata)
        async with self._lock:
            while project.id in self._projects:
                project.id = new_project_id()
            self._projects[project.id] = project
            return project.model_copy(deep=True)

    async def update(self, project_id: str, changes: ProjectUpdate) -> Optional[Project]:
        async with self._lock:
            existing = self._projects.get(project_id)
            if existing is None:
                return None
            updated = self._apply_update(existing.model_copy(deep=True), changes)
            self._projects[project_id] = updated
            return updated.model_copy(deep=True)

    async def replace_files(self, project_id: str, files: Dict[str, str]) -> Optional[Project]:
        files = validate_files(files)
        async with self._lock:
            existing = self._projects.get(project_id)
            if existing is None:
                return None
            updated = existing.model_copy(deep=True)
            updated.files = copy.deepcopy(files)
            updated.updated_at = next_timestamp(existing.updated_at)
            self._projects[project_id] = updated
            return updated.model_copy(deep=True)

    async def delete(self, project_id: str) -> bool:
        async with self._lock:
            return self._projects.pop(project_id, None) is not None


class SqlProjectStore(ProjectStore):
    """
    SQLAlchemy-backed store. One session and one transaction per operation;
    concurrency control is left to the database.
    """

    backend = "database"

    def __init__(self, engine: AsyncEngine, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.engine = engine
        self._session_factory = session_factory or create_session_factory(engine)

    @staticmethod
    def _to_project(record: ProjectRecord) -> Project:
        return Project(
            id=record.id,
            name=record.name,
            files=dict(record.files or {}),
            created_at=record.created_at,
            updated_at=record.updated_at,
            metadata=record.project_metadata,
        )

    @staticmethod
    def _copy_into(record: ProjectRecord, project: Project) -> None:
        record.name = project.name
        record.files = dict(project.files)
        record.updated_at = project.updated_at
        record.project_metadata = project.metadata.model_dump()

    async def list(self) -> List[ProjectSummary]:
        stmt = select(
            ProjectRecord.id,
            ProjectRecord.name,
            ProjectRecord.created_at,
            ProjectRecord.updated_at,
            ProjectRecord.project_metadata,
        ).order_by(ProjectRecord.created_at)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to list projects: {e}")
            raise StorageFault("Failed to fetch projects") from e
        return [
            ProjectSummary(
                id=project_id,
                name=name,
                created_at=created_at,
                updated_at=updated_at,
                metadata=metadata,
            )
            for project_id, name, created_at, updated_at, metadata in rows
        ]

    async def get(self, project_id: str) -> Optional[Project]:
        try:
            async with self._session_factory() as session:
                record = await session.get(ProjectRecord, project_id)
                return self._to_project(record) if record else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch project {project_id}: {e}")
            raise StorageFault("Failed to fetch project") from e

    async def create(self, name, files=None, metadata=None) -> Project:
        project = self._build_project(name, files, metadata)
        record = ProjectRecord(
            id=project.id,
            name=project.name,
            files=dict(project.files),
            created_at=project.created_at,
            updated_at=project.updated_at,
            project_metadata=project.metadata.model_dump(),
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(record)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create project {project.id}: {e}")
            raise StorageFault("Failed to create project") from e
        return project

    async def update(self, project_id: str, changes: ProjectUpdate) -> Optional[Project]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    record = await session.get(ProjectRecord, project_id)
                    if record is None:
                        return None
                    project = self._apply_update(self._to_project(record), changes)
                    self._copy_into(record, project)
            return project
        except SQLAlchemyError as e:
            logger.error(f"Failed to update project {project_id}: {e}")
            raise StorageFault("Failed to update project") from e

    async def replace_files(self, project_id: str, files: Dict[str, str]) -> Optional[Project]:
        files = validate_files(files)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    record = await session.get(ProjectRecord, project_id)
                    if record is None:
                        return None
                    project = self._to_project(record)
                    project.files = files
                    project.updated_at = next_timestamp(project.updated_at)
                    self._copy_into(record, project)
            return project
        except SQLAlchemyError as e:
            logger.error(f"Failed to save files for project {project_id}: {e}")
            raise StorageFault("Failed to save files") from e

    async def delete(self, project_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(ProjectRecord).where(ProjectRecord.id == project_id)
                    )
            return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete project {project_id}: {e}")
            raise StorageFault("Failed to delete project") from e

    async def close(self) -> None:
        await self.engine.dispose()


async def create_project_store(settings: Settings) -> ProjectStore:
    """
    Pick the storage backend once, at startup.

    With DATABASE_URL set, connect and create the schema; any failure falls
    back to in-memory storage for the rest of the process.
    """
    if not settings.database_url:
        logger.info("ℹ️ DATABASE_URL not set. Using in-memory project storage.")
        return InMemoryProjectStore()

    engine = None
    try:
        engine = create_engine(settings.database_url)
        await init_db(engine)
        logger.info("✅ Database connected successfully for project storage")
        return SqlProjectStore(engine)
    except Exception as e:
        logger.warning(f"⚠️ Database connection failed: {e}. Falling back to in-memory project storage.")
        if engine is not None:
            await engine.dispose()
        return InMemoryProjectStore()
