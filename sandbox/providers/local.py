"""
Local sandbox provider.

Used when a forced sandbox URL is configured (development against a sandbox
running on this machine). The sandbox is a workspace directory on the host;
absolute sandbox paths ("/app", "/state.json") map inside it and processes
run as asyncio subprocesses.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

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


@dataclass
class _LocalProcess:
    name: str
    proc: asyncio.subprocess.Process
    lines: list[str] = field(default_factory=list)
    reader: asyncio.Task | None = None


class LocalSandboxHandle(SandboxHandle):
    def __init__(self, provider: LocalProvider, sandbox_id: str, root: Path):
        self._provider = provider
        self._sandbox_id = sandbox_id
        self._root = root

    @property
    def sandbox_id(self) -> str:
        return self._sandbox_id

    def _resolve(self, path: str) -> Path:
        target = (self._root / path.lstrip("/")).resolve()
        if not target.is_relative_to(self._root.resolve()):
            raise SandboxError(f"Path escapes sandbox: {path}")
        return target

    def _to_sandbox_path(self, target: Path) -> str:
        return "/" + target.relative_to(self._root.resolve()).as_posix()

    # ==================== Filesystem ====================

    async def read_file(self, path: str) -> str:
        return await asyncio.to_thread(self._resolve(path).read_text)

    async def write_file(self, path: str, content: str) -> None:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)

        await asyncio.to_thread(_write)

    async def list_dir(self, path: str, depth: int = 8) -> DirectoryListing:
        return await asyncio.to_thread(self._list_sync, self._resolve(path), depth)

    def _list_sync(self, directory: Path, depth: int) -> DirectoryListing:
        if not directory.is_dir():
            raise FileNotFoundError(self._to_sandbox_path(directory))
        listing = DirectoryListing(name=directory.name, path=self._to_sandbox_path(directory))
        for child in directory.iterdir():
            if child.is_dir():
                if depth > 1:
                    listing.subdirectories.append(self._list_sync(child, depth - 1))
                else:
                    listing.subdirectories.append(
                        DirectoryListing(name=child.name, path=self._to_sandbox_path(child))
                    )
            else:
                listing.files.append(FileEntry(name=child.name, path=self._to_sandbox_path(child)))
        return listing

    # ==================== Processes ====================

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
        cwd = self._resolve(working_dir or "/")
        cwd.mkdir(parents=True, exist_ok=True)
        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=str(cwd),
            env={**os.environ, **(env or {})},
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        entry = _LocalProcess(name=name, proc=proc)
        entry.reader = asyncio.create_task(self._pump(entry, on_log))
        self._provider._processes[name] = entry
        if not wait:
            return ProcessResult(name=name, status="running")
        try:
            result = await asyncio.wait_for(self._finish(entry), timeout)
        except TimeoutError as e:
            if entry.proc.returncode is None:
                entry.proc.kill()
            self._release(entry)
            raise SandboxTimeoutError(f"{name} process exceeded {timeout:g}s", timeout=timeout) from e
        self._release(entry)
        return result

    @staticmethod
    async def _pump(entry: _LocalProcess, on_log: LogCallback | None) -> None:
        assert entry.proc.stdout is not None
        async for raw in entry.proc.stdout:
            line = raw.decode(errors="replace")
            entry.lines.append(line)
            if on_log is not None:
                on_log(line)

    @staticmethod
    def _snapshot(entry: _LocalProcess) -> ProcessResult:
        code = entry.proc.returncode
        if code is None:
            status = "running"
        else:
            status = "completed" if code == 0 else "failed"
        return ProcessResult(name=entry.name, status=status, exit_code=code, logs="".join(entry.lines))

    async def _finish(self, entry: _LocalProcess) -> ProcessResult:
        await entry.proc.wait()
        if entry.reader is not None:
            await entry.reader
        return self._snapshot(entry)

    def _release(self, entry: _LocalProcess) -> None:
        """Forget a process whose final result has been handed out."""
        if self._provider._processes.get(entry.name) is entry:
            del self._provider._processes[entry.name]

    def _entry(self, name: str) -> _LocalProcess:
        entry = self._provider._processes.get(name)
        if entry is None:
            raise ProcessNotFoundError(name)
        return entry

    async def get_process(self, name: str) -> ProcessResult:
        entry = self._entry(name)
        if entry.proc.returncode is None:
            return self._snapshot(entry)
        result = await self._finish(entry)
        self._release(entry)
        return result

    async def wait_process(self, name: str, max_wait: float) -> ProcessResult:
        entry = self._entry(name)
        try:
            result = await asyncio.wait_for(asyncio.shield(self._finish(entry)), max_wait)
        except TimeoutError:
            return self._snapshot(entry)
        self._release(entry)
        return result

    # ==================== Access ====================

    async def preview_url(self) -> str | None:
        return f"http://localhost:{self._provider.preview_port}"

    async def terminal_session(self) -> TerminalSession:
        return TerminalSession(url=self._provider.forced_url, token="local")


class LocalProvider(SandboxProvider):
    """One shared workspace on the host, addressed through the forced URL.

    Every sandbox id resolves to the same workspace, matching a single locally
    running sandbox. Deleting only stops its processes; the workspace itself
    is not owned by this service.
    """

    name = "local"

    def __init__(self, root: str | Path, forced_url: str | None = None, preview_port: int = 4321):
        self.root = Path(root).expanduser()
        self._forced_url = forced_url
        self.preview_port = preview_port
        self._processes: dict[str, _LocalProcess] = {}

    @property
    def forced_url(self) -> str | None:
        return self._forced_url

    async def create(self, spec: SandboxSpec) -> SandboxHandle:
        await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)
        logger.info("Local sandbox %s using workspace %s", spec.name, self.root)
        return LocalSandboxHandle(self, spec.name, self.root)

    async def get(self, sandbox_id: str) -> SandboxHandle:
        if not self.root.is_dir():
            raise SandboxNotFoundError(sandbox_id, f"Local sandbox workspace missing: {self.root}")
        return LocalSandboxHandle(self, sandbox_id, self.root)

    async def delete(self, sandbox_id: str) -> bool:
        for name, entry in list(self._processes.items()):
            if entry.proc.returncode is None:
                entry.proc.kill()
            del self._processes[name]
        logger.info("Local sandbox %s released", sandbox_id)
        return True

    async def list(self) -> list[SandboxSummary]:
        if not self.root.is_dir():
            return []
        created = datetime.fromtimestamp(self.root.stat().st_ctime, tz=timezone.utc).isoformat()
        return [SandboxSummary(sandbox_id=self._forced_url or "local", status="running", created_at=created)]
