"""Project queries and deletion against the record store and live sandboxes."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from config.schema import AppSettings
from sandbox.base import DirectoryListing
from sandbox.cache import SandboxCache, cache_key
from sandbox.errors import SandboxNotFoundError
from sandbox.provider import SandboxProvider
from sandbox.state_store import SessionState, SessionStateStore
from storage.project_store import SQLiteProjectStore

logger = logging.getLogger(__name__)


def build_file_tree(listing: DirectoryListing) -> list[dict[str, Any]]:
    """Directories first, then files; each group sorted case-insensitively."""
    nodes: list[dict[str, Any]] = []
    for sub in sorted(listing.subdirectories, key=lambda d: d.name.lower()):
        nodes.append({"name": sub.name, "path": sub.path, "type": "directory", "children": build_file_tree(sub)})
    for f in sorted(listing.files, key=lambda f: f.name.lower()):
        nodes.append({"name": f.name, "path": f.path, "type": "file"})
    return nodes


class ProjectService:
    def __init__(
        self,
        provider: SandboxProvider,
        cache: SandboxCache,
        projects: SQLiteProjectStore,
        state_store: SessionStateStore,
        settings: AppSettings,
    ):
        self.provider = provider
        self.cache = cache
        self.projects = projects
        self.state_store = state_store
        self.settings = settings

    async def _resolve(self, project_id: str):
        return await self.cache.resolve(project_id, self.provider.forced_url)

    async def list_projects(self) -> list[dict[str, Any]]:
        records = await asyncio.to_thread(self.projects.list)
        return [record.to_dict() for record in records]

    async def get_project(self, project_id: str) -> dict[str, Any]:
        """Project details with live preview and terminal access.

        Raises SandboxNotFoundError when the sandbox no longer exists.
        """
        handle = await self._resolve(project_id)
        record = await asyncio.to_thread(self.projects.get, project_id)
        preview_url = await handle.preview_url()
        terminal = await handle.terminal_session()
        project: dict[str, Any] = {
            "id": project_id,
            "name": record.name if record else project_id,
            "sandboxId": project_id,
            "previewUrl": preview_url,
            "sessionUrl": terminal.url,
            "sessionToken": terminal.token,
        }
        if record is not None:
            project["description"] = record.description
            project["createdAt"] = record.created_at
            project["updatedAt"] = record.updated_at
        return project

    async def delete_project(self, project_id: str) -> None:
        """Delete the sandbox and its record. An already-gone sandbox counts as deleted."""
        try:
            deleted = await self.provider.delete(project_id)
            if not deleted:
                logger.info("Sandbox %s not found, already deleted", project_id)
        finally:
            self.cache.invalidate(cache_key(project_id, self.provider.forced_url))
        await asyncio.to_thread(self.projects.delete, project_id)

    async def get_state(self, project_id: str) -> SessionState:
        try:
            handle = await self._resolve(project_id)
        except SandboxNotFoundError:
            return SessionState.default()
        return await self.state_store.load(handle)

    async def file_tree(self, project_id: str, path: str | None = None) -> list[dict[str, Any]]:
        handle = await self._resolve(project_id)
        listing = await handle.list_dir(path or self.settings.sandbox.app_dir)
        return build_file_tree(listing)

    async def read_file(self, project_id: str, path: str) -> dict[str, str]:
        handle = await self._resolve(project_id)
        content = await handle.read_file(path)
        return {"path": path, "content": content}
