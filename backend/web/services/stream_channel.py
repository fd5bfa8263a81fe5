"""In-memory stream channel decoupling generation work from the HTTP consumer.

The producer (a background task) emits newline-framed JSON events; the
response body reads them in order. Emission never blocks and turns into a
no-op once the consumer detaches, so background work runs to completion even
after the client goes away.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from fastapi.responses import StreamingResponse

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]\n"

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "X-Accel-Buffering": "no",
}


def log_event(text: str) -> dict[str, Any]:
    return {"log": text}


def sandbox_ready_event(
    sandbox_id: str,
    preview_url: str | None,
    session_url: str | None,
    session_token: str | None,
) -> dict[str, Any]:
    return {
        "previewUrl": preview_url,
        "sessionUrl": session_url,
        "sessionToken": session_token,
        "sandboxId": sandbox_id,
    }


def complete_event(content: str, *, error: bool = False) -> dict[str, Any]:
    event: dict[str, Any] = {"type": "complete", "content": content}
    if error:
        event["error"] = True
    return event


@dataclass
class StreamChannel:
    """Ordered frame buffer with one terminal marker and a [DONE] sentinel."""

    frames: list[str] = field(default_factory=list)
    closed: bool = False
    detached: bool = False
    terminal_sent: bool = False
    _changed: asyncio.Event = field(default_factory=asyncio.Event)

    def _push(self, frame: str) -> None:
        if self.closed or self.detached:
            return
        self.frames.append(frame)
        self._changed.set()

    def emit(self, event: dict[str, Any]) -> None:
        self._push(json.dumps(event) + "\n")

    def emit_log(self, text: str) -> None:
        self.emit(log_event(text))

    def emit_terminal(self, content: str, *, error: bool = False) -> None:
        """Emit the terminal marker. Only the first call has effect."""
        if self.terminal_sent:
            return
        self.terminal_sent = True
        self.emit(complete_event(content, error=error))

    def close(self) -> None:
        """Append the [DONE] sentinel and stop accepting frames. Idempotent."""
        if self.closed:
            return
        self._push(DONE_SENTINEL)
        self.closed = True
        self._changed.set()

    def detach(self) -> None:
        """Consumer went away: drop all further emissions."""
        if not self.detached and not self.closed:
            logger.info("Stream consumer detached; work continues in background")
        self.detached = True
        self._changed.set()

    async def stream(self) -> AsyncIterator[str]:
        """Yield frames in emission order until the channel is closed or detached."""
        cursor = 0
        while True:
            while cursor < len(self.frames):
                yield self.frames[cursor]
                cursor += 1
            if self.closed or self.detached:
                return
            self._changed.clear()
            await self._changed.wait()


def ndjson_response(channel: StreamChannel) -> StreamingResponse:
    """Wrap a channel in a streaming response; a client abort detaches the channel."""

    async def body() -> AsyncIterator[str]:
        try:
            async for frame in channel.stream():
                yield frame
        finally:
            channel.detach()

    return StreamingResponse(body(), media_type="text/plain; charset=utf-8", headers=STREAM_HEADERS)
