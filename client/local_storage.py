"""
File-backed key/value store mirroring the browser localStorage API
"""
import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, List, Optional

import aiofiles

logger = logging.getLogger(__name__)

# Keys become file names, so only allow a safe character set
VALID_KEY_PATTERN = re.compile(r'^[a-zA-Z0-9_.-]{1,200}$')

PROJECTS_KEY = "projects"


def project_files_key(project_id: str) -> str:
    return f"project-{project_id}"


class LocalStorage:
    """
    String keys to string values, one file per key under ``directory``.
    Values survive restarts, like the browser storage they stand in for.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        if not VALID_KEY_PATTERN.match(key) or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    async def get_item(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        exists = await asyncio.to_thread(path.exists)
        if not exists:
            return None
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return await f.read()

    async def set_item(self, key: str, value: str) -> None:
        path = self._path_for(key)
        temp_path = path.with_suffix(".json.tmp")
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(value)
        await asyncio.to_thread(temp_path.replace, path)

    async def remove_item(self, key: str) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(path.unlink, True)

    async def keys(self) -> List[str]:
        paths = await asyncio.to_thread(lambda: sorted(self.directory.glob("*.json")))
        return [path.stem for path in paths]

    # JSON helpers

    async def get_json(self, key: str, default: Any = None) -> Any:
        raw = await self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding unreadable local storage entry {key!r}")
            return default

    async def set_json(self, key: str, value: Any) -> None:
        await self.set_item(key, json.dumps(value))
