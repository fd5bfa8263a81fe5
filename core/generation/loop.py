"""Generation step loop.

Drives the capability over one session with a checkpoint after every step:

    load -> begin (prompt appended, in_progress) -> checkpoint
         -> per step: text to logs and stream, messages to history, checkpoint
         -> complete | error -> checkpoint -> terminal event

A process killed between steps leaves the last checkpoint behind, and the next
request for the session continues from that history.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Protocol

from langchain_core.tools import BaseTool

from config.schema import GenerationConfig
from core.generation.capability import GenerationCapability
from sandbox.base import SandboxHandle
from sandbox.errors import GenerationTimeoutError
from sandbox.state_store import SessionState, SessionStateStore, SessionStatus

logger = logging.getLogger(__name__)

CREATED_MESSAGE = (
    "✅ Your app is ready! Check out the preview on the right. "
    "You can continue to make changes by describing what you'd like to update."
)
UPDATED_MESSAGE = "✅ Your app has been updated! Check out the changes in the preview."
ERROR_PREFIX = "❌ Error during app generation: "


class ProgressSink(Protocol):
    def emit(self, event: dict[str, Any]) -> None: ...

    def emit_log(self, text: str) -> None: ...

    def emit_terminal(self, content: str, *, error: bool = False) -> None: ...


def error_line(error: BaseException) -> str:
    return f"{ERROR_PREFIX}{error_message(error)}"


def error_message(error: BaseException) -> str:
    return getattr(error, "message", None) or str(error) or type(error).__name__


class GenerationLoop:
    """Runs one generation for one session. Assumes a single writer per session."""

    def __init__(
        self,
        capability: GenerationCapability,
        store: SessionStateStore,
        config: GenerationConfig,
        system_prompt: str,
    ):
        self.capability = capability
        self.store = store
        self.config = config
        self.system_prompt = system_prompt

    async def record_failure(self, handle: SandboxHandle, prompt: str, error: BaseException) -> SessionState | None:
        """Persist an error run for a failure that happened before the loop started."""
        try:
            state = await self.store.load(handle)
        except Exception as e:
            logger.warning("Could not load state for %s to record failure: %s", handle.sandbox_id, e)
            return None
        state = state.begin(prompt).with_log(error_line(error)).fail(error_message(error))
        await self.store.save(handle, state)
        return state

    async def run(
        self,
        handle: SandboxHandle,
        prompt: str,
        sink: ProgressSink,
        tools: Sequence[BaseTool],
        *,
        is_new: bool,
    ) -> SessionState | None:
        """Run to a terminal state. Never raises except on cancellation.

        Returns the final state, or None when the state could not be loaded.
        """
        state: SessionState | None = None
        try:
            state = await self.store.load(handle)
            logger.info(
                "Loaded state for %s: %d messages, status %s",
                handle.sandbox_id,
                len(state.conversation_history),
                state.status.value,
            )
            if state.logs:
                sink.emit({"existingLogs": list(state.logs)})
            sink.emit_log("Running AI assistant...")

            state = state.begin(prompt)
            await self.store.save(handle, state)

            try:
                async with asyncio.timeout(self.config.overall_timeout):
                    async for step in self.capability.steps(
                        self.system_prompt,
                        state.conversation_history,
                        tools,
                        self.config.max_steps,
                    ):
                        lines = [step.text] if step.text else []
                        for line in lines:
                            sink.emit_log(line)
                        state = state.record_step(lines, step.messages)
                        await self.store.save(handle, state)
            except TimeoutError as e:
                raise GenerationTimeoutError(self.config.overall_timeout) from e

            summary = CREATED_MESSAGE if is_new else UPDATED_MESSAGE
            sink.emit_log(summary)
            state = state.with_log(summary).complete()
            await self.store.save(handle, state)
            sink.emit_terminal(summary)
            logger.info("Generation complete for %s", handle.sandbox_id)
            return state
        except Exception as e:
            logger.exception("Error during app generation for %s", handle.sandbox_id)
            line = error_line(e)
            sink.emit_log(line)
            if state is not None and state.status == SessionStatus.IN_PROGRESS:
                state = state.with_log(line).fail(error_message(e))
                await self.store.save(handle, state)
            sink.emit_terminal(line, error=True)
            return state
