"""Conversation message model.

Persisted conversation history is a list of tagged messages:

- user_text        prompt typed by the user
- assistant_text   text produced by the model
- tool_invocation  a tool call requested by the model
- tool_result      the output of executing a tool call

An assistant turn with text and tool calls is stored as one assistant_text
followed by its tool_invocations, and regrouped into a single AIMessage when
converted back to LangChain.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class _Message(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class UserText(_Message):
    type: Literal["user_text"] = "user_text"
    text: str


class AssistantText(_Message):
    type: Literal["assistant_text"] = "assistant_text"
    text: str


class ToolInvocation(_Message):
    type: Literal["tool_invocation"] = "tool_invocation"
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResult(_Message):
    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str
    name: str
    content: str
    is_error: bool = False


Message = Annotated[UserText | AssistantText | ToolInvocation | ToolResult, Field(discriminator="type")]

_history_adapter = TypeAdapter(list[Message])


def parse_history(raw: list[Any]) -> list[Message]:
    return _history_adapter.validate_python(raw)


def dump_history(history: list[Message]) -> list[dict[str, Any]]:
    return _history_adapter.dump_python(history, mode="json", by_alias=True)


def extract_text_content(raw_content: Any) -> str:
    """Extract text content from various message content formats."""
    if isinstance(raw_content, str):
        return raw_content
    if isinstance(raw_content, list):
        parts: list[str] = []
        for block in raw_content:
            if isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
            elif isinstance(block, str):
                parts.append(block)
        return "".join(parts)
    return str(raw_content)


def to_langchain(history: list[Message]) -> list[BaseMessage]:
    """Convert stored history into LangChain messages for a model call."""
    result: list[BaseMessage] = []
    pending: AIMessage | None = None

    def flush() -> None:
        nonlocal pending
        if pending is not None:
            result.append(pending)
            pending = None

    for message in history:
        if isinstance(message, AssistantText):
            flush()
            pending = AIMessage(content=message.text)
        elif isinstance(message, ToolInvocation):
            if pending is None:
                pending = AIMessage(content="")
            pending.tool_calls.append({"id": message.id, "name": message.name, "args": message.arguments})
        elif isinstance(message, ToolResult):
            flush()
            result.append(
                ToolMessage(
                    content=message.content,
                    tool_call_id=message.tool_call_id,
                    name=message.name,
                    status="error" if message.is_error else "success",
                )
            )
        else:
            flush()
            result.append(HumanMessage(content=message.text))
    flush()
    return result


def from_langchain(message: BaseMessage) -> list[Message]:
    """Split one LangChain message into stored history entries."""
    if isinstance(message, AIMessage):
        entries: list[Message] = []
        text = extract_text_content(message.content)
        if text:
            entries.append(AssistantText(text=text))
        for call in message.tool_calls:
            entries.append(ToolInvocation(id=call["id"] or "", name=call["name"], arguments=call.get("args") or {}))
        return entries
    if isinstance(message, ToolMessage):
        return [
            ToolResult(
                tool_call_id=message.tool_call_id,
                name=message.name or "",
                content=extract_text_content(message.content),
                is_error=message.status == "error",
            )
        ]
    return [UserText(text=extract_text_content(message.content))]
