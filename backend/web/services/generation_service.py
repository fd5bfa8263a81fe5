"""Generation request orchestration.

Each request runs as a tracked background task that owns the sandbox
acquisition and the generation loop. The HTTP response only reads the
task's StreamChannel, so a client abort stops emission but not the work.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3

from backend.web.services.stream_channel import StreamChannel, sandbox_ready_event
from config.schema import AppSettings
from core.generation.loop import GenerationLoop, error_line
from core.generation.tools import build_sandbox_tools
from sandbox.base import SandboxHandle
from sandbox.cache import SandboxCache
from sandbox.errors import SandboxError, SandboxTimeoutError
from sandbox.provider import SandboxProvider, SandboxSpec, new_sandbox_id
from storage.project_store import SQLiteProjectStore

logger = logging.getLogger(__name__)


class GenerationInProgressError(SandboxError):
    def __init__(self, sandbox_id: str) -> None:
        super().__init__(f"A generation is already running for {sandbox_id}")
        self.sandbox_id = sandbox_id


class BackgroundRuns:
    """Registry of background tasks keyed by session id."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}

    def is_running(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def spawn(self, key: str, coro) -> asyncio.Task:
        task = asyncio.create_task(coro, name=key)
        self._tasks[key] = task

        def _forget(done: asyncio.Task) -> None:
            if self._tasks.get(key) is done:
                del self._tasks[key]

        task.add_done_callback(_forget)
        return task

    def __len__(self) -> int:
        return len(self._tasks)

    async def shutdown(self, grace: float = 5.0) -> None:
        """Give running tasks a grace period, then cancel the rest."""
        tasks = list(self._tasks.values())
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=grace)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info("Cancelled %d background runs on shutdown", len(pending))


class GenerationService:
    def __init__(
        self,
        provider: SandboxProvider,
        cache: SandboxCache,
        loop: GenerationLoop,
        projects: SQLiteProjectStore,
        settings: AppSettings,
    ):
        self.provider = provider
        self.cache = cache
        self.loop = loop
        self.projects = projects
        self.settings = settings
        self.runs = BackgroundRuns()

    def is_running(self, sandbox_id: str) -> bool:
        return self.runs.is_running(sandbox_id)

    def start(self, prompt: str, sandbox_id: str | None = None) -> StreamChannel:
        """Start a generation and return its channel immediately.

        Raises GenerationInProgressError if the session already has an active run.
        """
        if sandbox_id and self.is_running(sandbox_id):
            raise GenerationInProgressError(sandbox_id)
        is_new = not sandbox_id
        session_id = sandbox_id or new_sandbox_id()
        channel = StreamChannel()
        logger.info("Starting app generation for %s (new=%s)", session_id, is_new)
        self.runs.spawn(session_id, self._run(prompt, session_id, is_new, channel))
        return channel

    async def shutdown(self, grace: float = 5.0) -> None:
        await self.runs.shutdown(grace)

    async def _run(self, prompt: str, sandbox_id: str, is_new: bool, channel: StreamChannel) -> None:
        handle: SandboxHandle | None = None
        try:
            if is_new:
                handle = await self._provision(sandbox_id, channel)
                await self._announce(sandbox_id, handle, channel)
                await self._record_project(sandbox_id, prompt, handle)
            else:
                channel.emit_log("Connecting to existing sandbox...")
                handle = await self.cache.resolve(sandbox_id, self.provider.forced_url)
                channel.emit_log("Connected to sandbox...")
                await self._touch_project(sandbox_id)

            tools = build_sandbox_tools(handle, self.settings.generation, self.settings.sandbox.app_dir)
            await self.loop.run(handle, prompt, channel, tools, is_new=is_new)
        except Exception as e:
            logger.exception("Error during app generation for %s", sandbox_id)
            line = error_line(e)
            channel.emit_log(line)
            # Without a handle there is no state document to write to.
            if handle is not None:
                await self.loop.record_failure(handle, prompt, e)
            channel.emit_terminal(line, error=True)
        finally:
            channel.emit_terminal("Generation interrupted", error=True)
            channel.close()

    async def _provision(self, sandbox_id: str, channel: StreamChannel) -> SandboxHandle:
        config = self.settings.sandbox
        channel.emit_log("Starting to build your app...")
        channel.emit_log("Setting up development environment...")

        spec = SandboxSpec(
            name=sandbox_id,
            image=config.image,
            memory_mb=config.memory_mb,
            labels={config.label: "true"},
            ports=[config.preview_port],
        )
        try:
            async with asyncio.timeout(config.create_timeout):
                handle = await self.provider.create(spec)
                await self.provider.wait_ready(handle, timeout=config.create_timeout)
        except TimeoutError as e:
            raise SandboxTimeoutError(
                f"Sandbox {sandbox_id} not ready after {config.create_timeout:g}s", timeout=config.create_timeout
            ) from e
        self.cache.register(sandbox_id, handle, self.provider.forced_url)
        channel.emit_log(f"Environment ready: {sandbox_id}")
        return handle

    async def _announce(self, sandbox_id: str, handle: SandboxHandle, channel: StreamChannel) -> None:
        """Emit preview and terminal access for a freshly provisioned sandbox."""
        config = self.settings.sandbox
        channel.emit_log("Setting up preview...")
        preview_url = await handle.preview_url()
        if not config.is_local:
            channel.emit_log("Setting up terminal access...")
        terminal = await handle.terminal_session()
        channel.emit(sandbox_ready_event(sandbox_id, preview_url, terminal.url, terminal.token))

    async def _record_project(self, sandbox_id: str, prompt: str, handle: SandboxHandle) -> None:
        try:
            preview_url = await handle.preview_url()
            await asyncio.to_thread(self.projects.create, sandbox_id, prompt, preview_url)
        except sqlite3.Error as e:
            logger.warning("Failed to record project %s: %s", sandbox_id, e)

    async def _touch_project(self, sandbox_id: str) -> None:
        try:
            await asyncio.to_thread(self.projects.touch, sandbox_id)
        except sqlite3.Error as e:
            logger.warning("Failed to touch project %s: %s", sandbox_id, e)
