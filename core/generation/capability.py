"""AI generation capability.

A capability turns (system prompt, history, tools, step bound) into a sequence
of steps. One step is one model call plus execution of the tool calls it
requested; the sequence ends when the model stops calling tools or the step
bound is reached.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from langchain_core.messages import BaseMessage, SystemMessage, ToolMessage
from langchain_core.tools import BaseTool

from config.schema import ModelConfig
from core.generation.messages import (
    Message,
    ToolInvocation,
    extract_text_content,
    from_langchain,
    to_langchain,
)
from sandbox.errors import CapabilityError, SandboxError

logger = logging.getLogger(__name__)


@dataclass
class StepResult:
    """Outcome of one capability step."""

    text: str = ""
    tool_calls: list[ToolInvocation] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)


class GenerationCapability(ABC):
    @abstractmethod
    def steps(
        self,
        system_prompt: str,
        history: list[Message],
        tools: Sequence[BaseTool],
        max_steps: int,
    ) -> AsyncIterator[StepResult]:
        """Yield one StepResult per completed step."""
        ...


class LangChainCapability(GenerationCapability):
    """Manual tool-calling loop over a LangChain chat model."""

    def __init__(self, config: ModelConfig, model: Any = None):
        self.config = config
        self._model = model

    def _get_model(self) -> Any:
        if self._model is None:
            from langchain.chat_models import init_chat_model

            kwargs: dict[str, Any] = {"max_tokens": self.config.max_tokens}
            if self.config.temperature is not None:
                kwargs["temperature"] = self.config.temperature
            try:
                self._model = init_chat_model(self.config.name, api_key=self.config.api_key, **kwargs)
            except Exception as e:
                raise CapabilityError(f"Failed to initialize model '{self.config.name}': {e}") from e
        return self._model

    async def steps(
        self,
        system_prompt: str,
        history: list[Message],
        tools: Sequence[BaseTool],
        max_steps: int,
    ) -> AsyncIterator[StepResult]:
        model = self._get_model()
        if tools:
            model = model.bind_tools(list(tools))
        by_name = {tool.name: tool for tool in tools}
        messages: list[BaseMessage] = [SystemMessage(content=system_prompt), *to_langchain(history)]

        for step in range(max_steps):
            try:
                response = await model.ainvoke(messages)
            except Exception as e:
                raise CapabilityError(f"Model invocation failed: {e}") from e
            messages.append(response)

            # Providers occasionally omit ids; results must reference the call they answer.
            for call in response.tool_calls:
                if not call.get("id"):
                    call["id"] = f"call_{uuid.uuid4().hex[:12]}"

            entries = from_langchain(response)
            for call in response.tool_calls:
                result = await self._run_tool(by_name, call)
                messages.append(result)
                entries.extend(from_langchain(result))

            yield StepResult(
                text=extract_text_content(response.content),
                tool_calls=[entry for entry in entries if isinstance(entry, ToolInvocation)],
                messages=entries,
            )
            if not response.tool_calls:
                return
        logger.info("Step bound of %d reached", max_steps)

    @staticmethod
    async def _run_tool(by_name: dict[str, BaseTool], call: dict[str, Any]) -> ToolMessage:
        name = call["name"]
        tool = by_name.get(name)
        if tool is None:
            return ToolMessage(content=f"Error: unknown tool '{name}'", tool_call_id=call["id"], name=name, status="error")
        try:
            output = await tool.ainvoke(call.get("args") or {})
        except FileNotFoundError as e:
            return ToolMessage(content=f"Error: file not found: {e}", tool_call_id=call["id"], name=name, status="error")
        except (SandboxError, OSError) as e:
            # Sandbox failures end the run.
            raise CapabilityError(f"Tool {name} failed: {e}") from e
        except Exception as e:
            logger.warning("Tool %s failed: %s", name, e)
            return ToolMessage(content=f"Error: {e}", tool_call_id=call["id"], name=name, status="error")
        content = output if isinstance(output, str) else str(output)
        return ToolMessage(content=content, tool_call_id=call["id"], name=name)
