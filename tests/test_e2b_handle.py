"""E2BSandboxHandle process bookkeeping over real e2b command handles.

The SDK's AsyncCommandHandle is driven by a hand-fed event stream, so no
network or API key is involved.
"""

import asyncio
from types import SimpleNamespace

import pytest
from e2b import AsyncCommandHandle, CommandResult

from sandbox.errors import ProcessTimeoutError, SandboxTimeoutError
from sandbox.poller import await_terminal
from sandbox.providers.e2b import PROCESS_ENV, E2BSandboxHandle


class GatedCommand:
    """A command whose event stream stays open until release() is called."""

    def __init__(self, pid: int):
        self.pid = pid
        self.gate = asyncio.Event()
        self.kills = 0
        self.handle = AsyncCommandHandle(pid=pid, handle_kill=self._kill, events=self._events())

    async def _events(self):
        await self.gate.wait()
        return
        yield

    async def _kill(self) -> bool:
        self.kills += 1
        return True

    def release(self, exit_code: int = 0) -> None:
        self.handle._result = CommandResult(stdout="", stderr="", exit_code=exit_code, error=None)
        self.gate.set()


class FakeCommands:
    def __init__(self):
        self.running: dict[str, GatedCommand] = {}
        self.run_calls: list[dict] = []

    async def run(self, command, **kwargs):
        self.run_calls.append({"command": command, **kwargs})
        name = kwargs["envs"][PROCESS_ENV]
        cmd = GatedCommand(pid=len(self.run_calls))
        self.running[name] = cmd
        return cmd.handle

    async def list(self):
        return [
            SimpleNamespace(pid=cmd.pid, envs={PROCESS_ENV: name}, tag=None)
            for name, cmd in self.running.items()
            if not cmd.gate.is_set()
        ]


@pytest.fixture
def commands():
    return FakeCommands()


@pytest.fixture
def handle(commands):
    return E2BSandboxHandle("app-1", SimpleNamespace(commands=commands, sandbox_id="e2b-remote"))


async def _close(commands: FakeCommands) -> None:
    for cmd in commands.running.values():
        await cmd.handle.disconnect()


class TestSlowProcesses:
    @pytest.mark.asyncio
    async def test_await_terminal_times_out_instead_of_cancelling(self, handle, commands):
        await handle.exec("clone-repository", "git clone https://example.test/repo.git", wait=False)
        try:
            with pytest.raises(ProcessTimeoutError):
                await await_terminal(handle, "clone-repository", max_attempts=3, poll_interval=0, max_wait=0.05)
        finally:
            await _close(commands)

    @pytest.mark.asyncio
    async def test_process_finishing_after_a_timed_out_wait_is_collected(self, handle, commands):
        await handle.exec("clone-repository", "git clone https://example.test/repo.git", wait=False)

        first = await handle.wait_process("clone-repository", max_wait=0.05)
        assert first.status == "running"

        commands.running["clone-repository"].release(exit_code=0)
        second = await handle.wait_process("clone-repository", max_wait=1)

        assert second.status == "completed"
        assert second.exit_code == 0
        assert await handle.get_process("clone-repository") == second

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_failed(self, handle, commands):
        await handle.exec("build", "npm run build", wait=False)
        commands.running["build"].release(exit_code=2)

        result = await handle.wait_process("build", max_wait=1)

        assert result.status == "failed"
        assert result.exit_code == 2

    @pytest.mark.asyncio
    async def test_exec_timeout_kills_the_process(self, handle, commands):
        with pytest.raises(SandboxTimeoutError):
            await handle.exec("exec-1", "sleep 600", timeout=0.05)
        try:
            assert commands.running["exec-1"].kills == 1
            assert commands.run_calls[0]["envs"] == {PROCESS_ENV: "exec-1"}
        finally:
            await _close(commands)
