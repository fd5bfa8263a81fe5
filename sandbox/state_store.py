"""Session state persisted as one JSON document inside the sandbox filesystem.

The document lives at a fixed path (default /state.json, outside the app
directory) and is always rewritten in full. Exactly one generation writes a
given session's document at a time; that is enforced by the request layer.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from core.generation.messages import Message, UserText, dump_history
from sandbox.base import SandboxHandle
from sandbox.errors import CheckpointError

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = "/state.json"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class SessionStatus(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class SessionState(BaseModel):
    """Versioned snapshot of one session. Transitions return new instances."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: SessionStatus = SessionStatus.IDLE
    logs: list[str] = Field(default_factory=list)
    conversation_history: list[Message] = Field(default_factory=list)
    current_prompt: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    error: str | None = None

    @field_validator("logs", "conversation_history", mode="before")
    @classmethod
    def _none_as_empty(cls, v):
        return [] if v is None else v

    @field_serializer("conversation_history")
    def _serialize_history(self, history: list[Message]):
        return dump_history(history)

    @classmethod
    def default(cls) -> SessionState:
        return cls()

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    # ==================== Transitions ====================

    def begin(self, prompt: str, now: str | None = None) -> SessionState:
        """Start a run: append the prompt to history and move to in_progress."""
        return self.model_copy(
            update={
                "status": SessionStatus.IN_PROGRESS,
                "conversation_history": [*self.conversation_history, UserText(text=prompt)],
                "current_prompt": prompt,
                "started_at": now or utc_now(),
                "completed_at": None,
                "error": None,
            }
        )

    def record_step(self, logs: list[str], messages: list[Message]) -> SessionState:
        """Append one step's log lines and history entries."""
        if self.status != SessionStatus.IN_PROGRESS:
            raise ValueError(f"Cannot record a step in status {self.status.value}")
        return self.model_copy(
            update={
                "logs": [*self.logs, *logs],
                "conversation_history": [*self.conversation_history, *messages],
            }
        )

    def with_log(self, line: str) -> SessionState:
        return self.model_copy(update={"logs": [*self.logs, line]})

    def complete(self, now: str | None = None) -> SessionState:
        if self.status != SessionStatus.IN_PROGRESS:
            raise ValueError(f"Cannot complete from status {self.status.value}")
        return self.model_copy(
            update={
                "status": SessionStatus.COMPLETED,
                "current_prompt": None,
                "completed_at": now or utc_now(),
                "error": None,
            }
        )

    def fail(self, message: str, now: str | None = None) -> SessionState:
        """Move to error, keeping history, logs and the prompt that failed."""
        if self.status != SessionStatus.IN_PROGRESS:
            raise ValueError(f"Cannot fail from status {self.status.value}")
        return self.model_copy(
            update={
                "status": SessionStatus.ERROR,
                "completed_at": now or utc_now(),
                "error": message,
            }
        )


class SessionStateStore:
    """Reads and checkpoints SessionState through a sandbox handle."""

    def __init__(self, path: str = DEFAULT_STATE_PATH):
        self.path = path

    async def load(self, handle: SandboxHandle) -> SessionState:
        """Load the persisted state; missing or unparsable documents yield the default.

        Other read failures (remote unavailable) propagate so a transient error
        never causes the next checkpoint to overwrite real history.
        """
        try:
            content = await handle.read_file(self.path)
        except FileNotFoundError:
            logger.info("No existing state found for %s, using default", handle.sandbox_id)
            return SessionState.default()
        except UnicodeDecodeError as e:
            logger.warning("State for %s is not valid UTF-8, using default: %s", handle.sandbox_id, e)
            return SessionState.default()
        try:
            return SessionState.model_validate(json.loads(content))
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError, TypeError) as e:
            logger.warning("Unparsable state for %s, using default: %s", handle.sandbox_id, e)
            return SessionState.default()

    async def save(self, handle: SandboxHandle, state: SessionState) -> bool:
        """Checkpoint the full state. Failures are logged, never raised."""
        try:
            await self._write(handle, state)
        except CheckpointError as e:
            logger.warning("%s", e)
            return False
        return True

    async def _write(self, handle: SandboxHandle, state: SessionState) -> None:
        try:
            content = json.dumps(state.to_document(), indent=2)
            await handle.write_file(self.path, content)
        except Exception as e:
            raise CheckpointError(f"Error writing state for {handle.sandbox_id}: {e}") from e
