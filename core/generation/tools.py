"""Sandbox tools exposed to the model: filesystem access and process execution."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict

from langchain_core.tools import BaseTool, StructuredTool
from pydantic import BaseModel, Field

from config.schema import GenerationConfig
from sandbox.base import SandboxHandle

logger = logging.getLogger(__name__)


class ReadFileArgs(BaseModel):
    path: str = Field(description="Absolute path of the file to read")


class WriteFileArgs(BaseModel):
    path: str = Field(description="Absolute path of the file to write")
    content: str = Field(description="Full file content")


class ListDirectoryArgs(BaseModel):
    path: str = Field(description="Absolute path of the directory to list")


class ExecuteArgs(BaseModel):
    command: str = Field(description="Shell command to run")
    working_dir: str | None = Field(None, description="Working directory (defaults to the app directory)")


def build_sandbox_tools(handle: SandboxHandle, config: GenerationConfig, app_dir: str = "/app") -> list[BaseTool]:
    """Bind the sandbox tool set to one handle, filtered by the allow-list."""

    async def fs_read_file(path: str) -> str:
        try:
            return await handle.read_file(path)
        except FileNotFoundError:
            return f"Error: file not found: {path}"

    async def fs_write_file(path: str, content: str) -> str:
        await handle.write_file(path, content)
        return f"Wrote {len(content.encode('utf-8'))} bytes to {path}"

    async def fs_list_directory(path: str) -> str:
        listing = await handle.list_dir(path, depth=1)
        return json.dumps(asdict(listing))

    async def process_execute(command: str, working_dir: str | None = None) -> str:
        name = f"exec-{int(time.time() * 1000)}"
        logger.info("Executing in %s: %s", handle.sandbox_id, command)
        result = await handle.exec(
            name,
            command,
            working_dir=working_dir or app_dir,
            wait=True,
            timeout=config.process_wait,
        )
        return json.dumps({"status": result.status, "exitCode": result.exit_code, "logs": result.logs})

    tools: list[BaseTool] = [
        StructuredTool.from_function(
            coroutine=fs_read_file,
            name="fsReadFile",
            description="Read a text file from the sandbox filesystem.",
            args_schema=ReadFileArgs,
        ),
        StructuredTool.from_function(
            coroutine=fs_write_file,
            name="fsWriteFile",
            description="Create or overwrite a file in the sandbox filesystem.",
            args_schema=WriteFileArgs,
        ),
        StructuredTool.from_function(
            coroutine=fs_list_directory,
            name="fsListDirectory",
            description="List files and subdirectories of a sandbox directory.",
            args_schema=ListDirectoryArgs,
        ),
        StructuredTool.from_function(
            coroutine=process_execute,
            name="processExecute",
            description="Run a shell command in the sandbox and wait for it to finish.",
            args_schema=ExecuteArgs,
        ),
    ]
    allowed = set(config.allowed_tools)
    return [tool for tool in tools if tool.name in allowed]
