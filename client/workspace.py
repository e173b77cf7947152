import asyncio
import logging
from typing import Dict, List, Optional

from client.preview import build_preview_files, select_entry_point
from client.project_client import ProjectClient

logger = logging.getLogger(__name__)

# Seconds of editor inactivity before an automatic save
AUTO_SAVE_DELAY = 2.0


class LastFileError(Exception):
    """Raised when deleting the only remaining file of a project"""


class ProjectWorkspace:
    """
    Editor-side state for one open project: the working file map, open tabs
    and the active file.

    Edits stay local until ``save()``. With ``auto_save_delay`` set, every
    edit (re)starts a timer and the files are saved once the editor has been
    idle for that long.
    """

    def __init__(
        self,
        client: ProjectClient,
        project_id: str,
        files: Optional[Dict[str, str]] = None,
        auto_save_delay: Optional[float] = None,
    ):
        self.client = client
        self.project_id = project_id
        self.files: Dict[str, str] = dict(files or {})
        self.open_tabs: List[str] = []
        self.active_file = ""
        self.dirty = False
        self.auto_save_delay = auto_save_delay
        self._save_timer: Optional[asyncio.TimerHandle] = None
        self._save_task: Optional[asyncio.Task] = None
        if self.files:
            self.open_file(next(iter(self.files)))

    @classmethod
    async def load(
        cls,
        client: ProjectClient,
        project_id: str,
        auto_save_delay: Optional[float] = None,
    ) -> Optional["ProjectWorkspace"]:
        project = await client.get_project(project_id)
        if project is None:
            return None
        return cls(client, project_id, project.files, auto_save_delay=auto_save_delay)

    def _changed(self) -> None:
        self.dirty = True
        if self.auto_save_delay is not None:
            self.schedule_save(self.auto_save_delay)

    def update_file(self, path: str, content: str) -> None:
        """Change callback for the code editor"""
        if self.files.get(path) == content:
            return
        self.files[path] = content
        self._changed()

    def create_file(self, path: str) -> bool:
        if path in self.files:
            return False
        self.files[path] = ""
        self._changed()
        self.open_file(path)
        return True

    def delete_file(self, path: str) -> None:
        if path not in self.files:
            return
        if len(self.files) == 1:
            raise LastFileError("Cannot delete the last file in the project")
        del self.files[path]
        self._changed()
        if path in self.open_tabs:
            self.open_tabs.remove(path)
        if self.active_file == path:
            self.active_file = next(iter(self.files))

    def open_file(self, path: str) -> None:
        self.active_file = path
        if path not in self.open_tabs:
            self.open_tabs.append(path)

    def close_tab(self, path: str) -> None:
        if path in self.open_tabs:
            self.open_tabs.remove(path)
        if self.active_file == path:
            self.active_file = self.open_tabs[-1] if self.open_tabs else ""

    @property
    def entry_point(self) -> str:
        return select_entry_point(self.files)

    def preview_files(self) -> Dict[str, Dict[str, str]]:
        return build_preview_files(self.files)

    async def save(self) -> bool:
        saved = await self.client.save_project_files(self.project_id, dict(self.files))
        if saved:
            self.dirty = False
            logger.debug(f"Workspace saved for project {self.project_id}")
        return saved

    # Debounced saving

    @property
    def save_pending(self) -> bool:
        return self._save_timer is not None

    def schedule_save(self, delay: float = AUTO_SAVE_DELAY) -> None:
        """
        Save after ``delay`` seconds unless another edit comes first.
        Must be called from a running event loop.
        """
        self.cancel_pending_save()
        loop = asyncio.get_running_loop()
        self._save_timer = loop.call_later(delay, self._start_auto_save)

    def cancel_pending_save(self) -> None:
        # A save already in flight is left to finish
        if self._save_timer is not None:
            self._save_timer.cancel()
            self._save_timer = None

    def _start_auto_save(self) -> None:
        self._save_timer = None
        self._save_task = asyncio.ensure_future(self._auto_save())

    async def _auto_save(self) -> None:
        try:
            await self.save()
        except Exception as e:
            logger.error(f"Auto-save failed for project {self.project_id}: {e}")

    async def flush(self) -> None:
        """Run any pending save now and wait for an in-flight one"""
        if self._save_timer is not None:
            self.cancel_pending_save()
            await self.save()
        if self._save_task is not None:
            await self._save_task
            self._save_task = None
