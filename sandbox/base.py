"""SandboxHandle ABC: a live connection to one remote sandbox.

A handle bundles the capabilities the orchestration layer consumes:
- filesystem: read_file / write_file / list_dir
- processes:  exec / get_process / wait_process
- access:     preview_url / terminal_session
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field

TERMINAL_PROCESS_STATUSES = frozenset({"completed", "failed", "stopped"})

LogCallback = Callable[[str], None]


@dataclass
class ProcessResult:
    """Status snapshot of a named process inside a sandbox."""

    name: str
    status: str  # 'running', 'completed', 'failed', 'stopped'
    exit_code: int | None = None
    logs: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PROCESS_STATUSES


@dataclass
class FileEntry:
    name: str
    path: str


@dataclass
class DirectoryListing:
    """Recursive directory listing as returned by the sandbox filesystem."""

    name: str
    path: str
    files: list[FileEntry] = field(default_factory=list)
    subdirectories: list[DirectoryListing] = field(default_factory=list)


@dataclass
class TerminalSession:
    url: str | None
    token: str | None


class SandboxHandle(ABC):
    """Abstract live handle to a provisioned sandbox."""

    @property
    @abstractmethod
    def sandbox_id(self) -> str:
        """Globally unique sandbox identifier."""
        ...

    # ==================== Filesystem ====================

    @abstractmethod
    async def read_file(self, path: str) -> str:
        """Read a text file. Raises FileNotFoundError if absent."""
        ...

    @abstractmethod
    async def write_file(self, path: str, content: str) -> None:
        """Overwrite a file with content in a single write."""
        ...

    @abstractmethod
    async def list_dir(self, path: str, depth: int = 8) -> DirectoryListing:
        """List a directory recursively up to depth levels."""
        ...

    # ==================== Processes ====================

    @abstractmethod
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
        """Start a named process. With wait=True, block until it finishes."""
        ...

    @abstractmethod
    async def get_process(self, name: str) -> ProcessResult:
        """Fetch the status of a named process. Raises ProcessNotFoundError."""
        ...

    @abstractmethod
    async def wait_process(self, name: str, max_wait: float) -> ProcessResult:
        """Wait up to max_wait seconds; returns the latest status (may still be running)."""
        ...

    # ==================== Access ====================

    @abstractmethod
    async def preview_url(self) -> str | None:
        """Public URL of the application preview, if exposed."""
        ...

    @abstractmethod
    async def terminal_session(self) -> TerminalSession:
        """URL and token for interactive terminal access."""
        ...
