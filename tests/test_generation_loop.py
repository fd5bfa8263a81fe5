"""Generation step loop: checkpointing, resumability and terminal events."""

import asyncio
import json

import pytest
from langchain_core.messages import AIMessage

from config.schema import GenerationConfig, ModelConfig
from core.generation.capability import LangChainCapability, StepResult
from core.generation.loop import CREATED_MESSAGE, ERROR_PREFIX, UPDATED_MESSAGE, GenerationLoop
from core.generation.messages import UserText
from core.generation.tools import build_sandbox_tools
from fakes.capability import RecordingSink, ScriptedCapability, ScriptedChatModel, text_step, tool_step
from fakes.sandbox import FakeHandle
from sandbox.errors import CapabilityError
from sandbox.state_store import SessionState, SessionStateStore, SessionStatus


class CheckpointRecorder(FakeHandle):
    """Records every state document written, in order."""

    def __init__(self, sandbox_id: str = "app-1"):
        super().__init__(sandbox_id)
        self.checkpoints: list[dict] = []

    async def write_file(self, path: str, content: str) -> None:
        await super().write_file(path, content)
        self.checkpoints.append(json.loads(content))


def _loop(capability, **config) -> GenerationLoop:
    return GenerationLoop(capability, SessionStateStore(), GenerationConfig(**config), system_prompt="SYSTEM")


def _run(loop: GenerationLoop, handle, prompt="build a todo app", *, is_new=True):
    sink = RecordingSink()
    state = asyncio.run(loop.run(handle, prompt, sink, [], is_new=is_new))
    return state, sink


class TestSuccess:
    def test_checkpoints_after_entry_and_every_step(self):
        handle = CheckpointRecorder()
        capability = ScriptedCapability([tool_step(0, "Planning"), tool_step(1), text_step("All done")])

        state, sink = _run(_loop(capability), handle)

        # entry + 3 steps + completion
        assert len(handle.checkpoints) == 5
        assert handle.checkpoints[0]["status"] == "in_progress"
        assert [c["status"] for c in handle.checkpoints[1:4]] == ["in_progress"] * 3
        assert handle.checkpoints[-1]["status"] == "completed"
        assert state.status == SessionStatus.COMPLETED
        assert state.current_prompt is None
        assert sink.logs == ["Running AI assistant...", "Planning", "All done", CREATED_MESSAGE]
        assert sink.terminals == [{"type": "complete", "content": CREATED_MESSAGE}]

    def test_capability_receives_prompt_and_bound(self):
        handle = CheckpointRecorder()
        capability = ScriptedCapability([text_step("ok")])
        _run(_loop(capability, max_steps=7), handle)

        call = capability.calls[0]
        assert call["system_prompt"] == "SYSTEM"
        assert call["max_steps"] == 7
        assert call["history"] == [UserText(text="build a todo app")]

    def test_update_run_resumes_history_and_replays_logs(self):
        handle = CheckpointRecorder()
        _run(_loop(ScriptedCapability([tool_step(0, "First pass")])), handle)

        capability = ScriptedCapability([text_step("Changed colors")])
        state, sink = _run(_loop(capability), handle, "make it blue", is_new=False)

        assert sink.events[0] == {"existingLogs": ["First pass", CREATED_MESSAGE]}
        assert sink.terminals == [{"type": "complete", "content": UPDATED_MESSAGE}]
        previous = capability.calls[0]["history"]
        assert previous[0] == UserText(text="build a todo app")
        assert previous[-1] == UserText(text="make it blue")
        assert len(previous) == 5

    def test_history_never_shrinks_across_checkpoints(self):
        handle = CheckpointRecorder()
        _run(_loop(ScriptedCapability([tool_step(0), tool_step(1)])), handle)
        _run(_loop(ScriptedCapability([RuntimeError("boom")])), handle, "again", is_new=False)
        _run(_loop(ScriptedCapability([tool_step(2)])), handle, "third", is_new=False)

        lengths = [len(c["conversationHistory"]) for c in handle.checkpoints]
        assert lengths == sorted(lengths)


class TestResume:
    def test_interrupted_run_continues_from_last_checkpoint(self):
        handle = CheckpointRecorder()
        step = tool_step(0, "Planning")
        interrupted = SessionState.default().begin("build a todo app").record_step([step.text], step.messages)
        handle.files["/state.json"] = json.dumps(interrupted.to_document())

        capability = ScriptedCapability([text_step("Added footer")])
        state, sink = _run(_loop(capability), handle, "add a footer", is_new=False)

        assert capability.calls[0]["history"] == [*interrupted.conversation_history, UserText(text="add a footer")]
        assert sink.events[0] == {"existingLogs": ["Planning"]}
        assert state.status == SessionStatus.COMPLETED
        assert handle.checkpoints[-1]["status"] == "completed"
        assert handle.checkpoints[-1]["logs"] == ["Planning", "Added footer", UPDATED_MESSAGE]


class TestFailure:
    def test_error_on_step_two_of_five_keeps_earlier_steps(self):
        handle = CheckpointRecorder()
        capability = ScriptedCapability(
            [tool_step(0, "step zero"), tool_step(1, "step one"), CapabilityError("model overloaded"), tool_step(3), tool_step(4)]
        )

        state, sink = _run(_loop(capability), handle)

        assert state.status == SessionStatus.ERROR
        assert state.error == "model overloaded"
        final = handle.checkpoints[-1]
        assert final["status"] == "error"
        # prompt + two steps of (assistant text, invocation, result)
        assert len(final["conversationHistory"]) == 7
        assert final["currentPrompt"] == "build a todo app"
        assert final["logs"][-1] == f"{ERROR_PREFIX}model overloaded"

        assert sink.logs[-1] == f"{ERROR_PREFIX}model overloaded"
        assert len(sink.terminals) == 1
        assert sink.terminals[0]["error"] is True
        assert sink.events[-1] == sink.terminals[0]

    def test_checkpoint_failure_does_not_abort_generation(self):
        handle = CheckpointRecorder()
        handle.fail_writes = True
        state, sink = _run(_loop(ScriptedCapability([text_step("still going")])), handle)

        assert state.status == SessionStatus.COMPLETED
        assert "still going" in sink.logs
        assert sink.terminals[0]["content"] == CREATED_MESSAGE

    def test_load_failure_emits_error_without_checkpoint(self):
        handle = CheckpointRecorder()
        handle.fail_reads = ConnectionError("unreachable")
        state, sink = _run(_loop(ScriptedCapability([text_step("never")])), handle)

        assert state is None
        assert handle.checkpoints == []
        assert sink.logs == [f"{ERROR_PREFIX}unreachable"]
        assert len(sink.terminals) == 1

    def test_unreachable_sandbox_during_tool_call_fails_the_run(self):
        class UnreachableHandle(CheckpointRecorder):
            async def exec(self, name, command, **kwargs):
                raise ConnectionError("sandbox unreachable")

        handle = UnreachableHandle()
        model = ScriptedChatModel(
            [
                AIMessage(content="Installing", tool_calls=[{"id": "c1", "name": "processExecute", "args": {"command": "npm install"}}]),
                AIMessage(content="never reached"),
            ]
        )
        loop = GenerationLoop(LangChainCapability(ModelConfig(), model=model), SessionStateStore(), GenerationConfig(), "SYSTEM")
        sink = RecordingSink()

        state = asyncio.run(loop.run(handle, "build it", sink, build_sandbox_tools(handle, GenerationConfig()), is_new=True))

        assert state.status == SessionStatus.ERROR
        assert "sandbox unreachable" in state.error
        assert state.conversation_history == [UserText(text="build it")]
        assert handle.checkpoints[-1]["status"] == "error"
        assert sink.logs[-1].startswith(ERROR_PREFIX)
        assert len(sink.terminals) == 1 and sink.terminals[0]["error"] is True

    def test_overall_timeout_becomes_error_state(self):
        handle = CheckpointRecorder()
        slow = ScriptedCapability([text_step("a"), text_step("b")], delay=0.2)

        state, sink = _run(_loop(slow, overall_timeout=0.05), handle)

        assert state.status == SessionStatus.ERROR
        assert "timed out" in state.error
        assert sink.terminals[0]["error"] is True


@pytest.mark.asyncio
async def test_step_bound_is_respected():
    handle = CheckpointRecorder()
    capability = ScriptedCapability([tool_step(i) for i in range(10)])
    loop = _loop(capability, max_steps=3)

    state = await loop.run(handle, "p", RecordingSink(), [], is_new=True)

    assert state.status == SessionStatus.COMPLETED
    # prompt + three steps of (invocation, result)
    assert len(state.conversation_history) == 7


def test_default_state_is_exactly_documented_default():
    handle = FakeHandle("fresh")
    assert asyncio.run(SessionStateStore().load(handle)) == SessionState.default()
    assert StepResult().messages == []
