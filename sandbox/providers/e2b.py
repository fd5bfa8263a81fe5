"""
E2B sandbox provider.

Implements SandboxProvider using E2B's async cloud sandbox SDK.

Key points:
- E2B assigns its own sandbox ids; ours (app-<ts>-<rand>) travel in sandbox metadata
  and are resolved with a metadata-filtered list call on connect.
- E2B has no named processes. exec() tags each process env with SANDCASTLE_PROCESS
  so get_process() can find it again by name while it runs; finished results
  are remembered on the handle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from sandbox.base import (
    DirectoryListing,
    FileEntry,
    LogCallback,
    ProcessResult,
    SandboxHandle,
    TerminalSession,
)
from sandbox.errors import ProcessNotFoundError, SandboxError, SandboxNotFoundError, SandboxTimeoutError
from sandbox.provider import SandboxProvider, SandboxSpec, SandboxSummary

logger = logging.getLogger(__name__)

PROCESS_ENV = "SANDCASTLE_PROCESS"
NAME_KEY = "sandcastle_name"
_SETTLE_WAIT = 5.0


class E2BSandboxHandle(SandboxHandle):
    """Live handle around an e2b AsyncSandbox."""

    def __init__(self, name: str, sandbox: Any, preview_port: int = 4321, terminal_port: int = 7681):
        self._name = name
        self._sbx = sandbox
        self._preview_port = preview_port
        self._terminal_port = terminal_port
        self._handles: dict[str, Any] = {}
        self._finished: dict[str, ProcessResult] = {}
        self._logs: dict[str, list[str]] = {}
        self._watchers: dict[str, asyncio.Task] = {}

    @property
    def sandbox_id(self) -> str:
        return self._name

    # ==================== Filesystem ====================

    async def read_file(self, path: str) -> str:
        from e2b import NotFoundException

        try:
            return await self._sbx.files.read(path)
        except NotFoundException as e:
            raise FileNotFoundError(path) from e

    async def write_file(self, path: str, content: str) -> None:
        await self._sbx.files.write(path, content)

    async def list_dir(self, path: str, depth: int = 8) -> DirectoryListing:
        listing = DirectoryListing(name=path.rstrip("/").rsplit("/", 1)[-1] or "/", path=path)
        entries = await self._sbx.files.list(path)
        for entry in entries:
            entry_path = getattr(entry, "path", None) or f"{path.rstrip('/')}/{entry.name}"
            if entry.type and entry.type.value == "dir":
                if depth > 1:
                    listing.subdirectories.append(await self.list_dir(entry_path, depth - 1))
                else:
                    listing.subdirectories.append(DirectoryListing(name=entry.name, path=entry_path))
            else:
                listing.files.append(FileEntry(name=entry.name, path=entry_path))
        return listing

    # ==================== Processes ====================

    def _collector(self, name: str, on_log: LogCallback | None):
        lines = self._logs.setdefault(name, [])

        def _on_output(data: Any) -> None:
            text = str(data)
            lines.append(text)
            if on_log is not None:
                on_log(text)

        return _on_output

    def _running(self, name: str) -> ProcessResult:
        return ProcessResult(name=name, status="running", logs="".join(self._logs.get(name, [])))

    async def exec(
        self,
        name: str,
        command: str,
        *,
        working_dir: str | None = None,
        env: dict[str, str] | None = None,
        on_log: LogCallback | None = None,
        wait: bool = True,
        timeout: float | None = None,
    ) -> ProcessResult:
        self._finished.pop(name, None)
        self._logs[name] = []
        callback = self._collector(name, on_log)
        handle = await self._sbx.commands.run(
            command,
            background=True,
            cwd=working_dir,
            envs={**(env or {}), PROCESS_ENV: name},
            on_stdout=callback,
            on_stderr=callback,
            timeout=0,
        )
        self._handles[name] = handle
        if not wait:
            return ProcessResult(name=name, status="running")
        result = await self._wait_for(name, handle, timeout)
        if result is None:
            await self._kill(name, handle)
            raise SandboxTimeoutError(f"{name} process exceeded {timeout:g}s", timeout=timeout)
        return result

    async def _kill(self, name: str, handle: Any) -> None:
        watcher = self._watchers.pop(name, None)
        if watcher is not None:
            watcher.cancel()
        self._handles.pop(name, None)
        try:
            await handle.kill()
        except Exception as e:
            logger.warning("Failed to kill process %s in %s: %s", name, self._name, e)

    async def _wait_for(self, name: str, handle: Any, timeout: float | None) -> ProcessResult | None:
        """Wait up to timeout for the process to end; None if it is still running.

        One watcher task per process awaits the SDK handle. A timed-out wait leaves
        it running so the next attempt picks up where this one stopped.
        """
        watcher = self._watchers.get(name)
        if watcher is None:
            watcher = asyncio.create_task(self._collect(name, handle), name=f"e2b-wait-{name}")
            self._watchers[name] = watcher
        done, _ = await asyncio.wait({watcher}, timeout=timeout)
        if not done:
            return None
        self._watchers.pop(name, None)
        return watcher.result()

    async def _collect(self, name: str, handle: Any) -> ProcessResult:
        from e2b import CommandExitException

        try:
            result = await handle.wait()
            exit_code = result.exit_code
        except CommandExitException as e:
            exit_code = e.exit_code
        status = "completed" if exit_code == 0 else "failed"
        finished = ProcessResult(
            name=name,
            status=status,
            exit_code=exit_code,
            logs="".join(self._logs.pop(name, [])),
        )
        self._finished[name] = finished
        self._handles.pop(name, None)
        return finished

    async def _find_pid(self, name: str) -> int | None:
        for proc in await self._sbx.commands.list():
            envs = getattr(proc, "envs", None) or {}
            if envs.get(PROCESS_ENV) == name or getattr(proc, "tag", None) == name:
                return proc.pid
        return None

    async def get_process(self, name: str) -> ProcessResult:
        if name in self._finished:
            return self._finished[name]
        watcher = self._watchers.get(name)
        if watcher is not None and watcher.done():
            return await self._wait_for(name, self._handles.get(name), 0)
        if await self._find_pid(name) is not None:
            return self._running(name)
        handle = self._handles.get(name)
        if handle is not None:
            # Gone from the listing, so its end event is on the way.
            return await self._wait_for(name, handle, _SETTLE_WAIT) or self._running(name)
        raise ProcessNotFoundError(name)

    async def wait_process(self, name: str, max_wait: float) -> ProcessResult:
        if name in self._finished:
            return self._finished[name]
        handle = self._handles.get(name)
        if handle is None:
            pid = await self._find_pid(name)
            if pid is None:
                raise ProcessNotFoundError(name)
            callback = self._collector(name, None)
            handle = await self._sbx.commands.connect(pid, on_stdout=callback, on_stderr=callback)
            self._handles[name] = handle
        return await self._wait_for(name, handle, max_wait) or self._running(name)

    # ==================== Access ====================

    async def preview_url(self) -> str | None:
        return f"https://{self._sbx.get_host(self._preview_port)}"

    async def terminal_session(self) -> TerminalSession:
        return TerminalSession(url=f"https://{self._sbx.get_host(self._terminal_port)}", token=None)


class E2BProvider(SandboxProvider):
    """E2B cloud sandbox provider."""

    name = "e2b"

    def __init__(
        self,
        api_key: str | None,
        lifetime: int = 3600,
        preview_port: int = 4321,
        terminal_port: int = 7681,
        label: str = "sandcastle",
    ):
        self.api_key = api_key
        self.lifetime = lifetime
        self.preview_port = preview_port
        self.terminal_port = terminal_port
        self.label = label

    def _handle(self, name: str, sandbox: Any) -> E2BSandboxHandle:
        return E2BSandboxHandle(name, sandbox, preview_port=self.preview_port, terminal_port=self.terminal_port)

    async def create(self, spec: SandboxSpec) -> SandboxHandle:
        from e2b import AsyncSandbox, SandboxException

        metadata = {**spec.labels, self.label: "true", NAME_KEY: spec.name}
        try:
            sandbox = await AsyncSandbox.create(
                template=spec.image,
                timeout=self.lifetime,
                metadata=metadata,
                envs=spec.envs,
                api_key=self.api_key,
            )
        except SandboxException as e:
            raise SandboxError(f"Failed to create sandbox {spec.name}: {e}") from e
        logger.info("Sandbox created: %s (e2b id %s)", spec.name, sandbox.sandbox_id)
        return self._handle(spec.name, sandbox)

    async def _find_remote_id(self, sandbox_id: str) -> str | None:
        for summary, remote_id in await self._list_raw({NAME_KEY: sandbox_id}):
            if summary.sandbox_id == sandbox_id:
                return remote_id
        return None

    async def get(self, sandbox_id: str) -> SandboxHandle:
        from e2b import AsyncSandbox, NotFoundException

        remote_id = await self._find_remote_id(sandbox_id)
        if remote_id is None:
            raise SandboxNotFoundError(sandbox_id)
        try:
            sandbox = await AsyncSandbox.connect(remote_id, timeout=self.lifetime, api_key=self.api_key)
        except NotFoundException as e:
            raise SandboxNotFoundError(sandbox_id) from e
        return self._handle(sandbox_id, sandbox)

    async def delete(self, sandbox_id: str) -> bool:
        from e2b import AsyncSandbox, NotFoundException

        remote_id = await self._find_remote_id(sandbox_id)
        if remote_id is None:
            return False
        try:
            return bool(await AsyncSandbox.kill(remote_id, api_key=self.api_key))
        except NotFoundException:
            return False

    async def _list_raw(self, metadata: dict[str, str]) -> list[tuple[SandboxSummary, str]]:
        from e2b import AsyncSandbox, SandboxQuery

        # @@@ AsyncSandbox.list() returns a paginator, not a list
        paginator = AsyncSandbox.list(query=SandboxQuery(metadata=metadata), api_key=self.api_key)
        items = list(await paginator.next_items())
        while paginator.has_next:
            items.extend(await paginator.next_items())

        results = []
        for item in items:
            meta = dict(item.metadata or {})
            started = getattr(item, "started_at", None)
            state = getattr(item, "state", None)
            summary = SandboxSummary(
                sandbox_id=meta.get(NAME_KEY, item.sandbox_id),
                status=state.value if state is not None else "running",
                created_at=started.isoformat() if started else None,
                labels=meta,
            )
            results.append((summary, item.sandbox_id))
        return results

    async def list(self) -> list[SandboxSummary]:
        return [summary for summary, _ in await self._list_raw({self.label: "true"})]
