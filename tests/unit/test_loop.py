"""Unit tests for ConversationalLoop."""

import asyncio

import pytest

from weft.agent import (
    CONVERSATION_ABORTED,
    EMPTY_CONVERSATION,
    MAX_ITERATIONS_REACHED,
    ConversationalLoop,
)
from weft.config import LoopConfig
from weft.errors import LLMError
from weft.knowledge import EmbeddingEngine, RAGAugmentation, RAGRetriever
from weft.tools import ToolExecutor
from weft.types import (
    AgentSpec,
    AgentTool,
    DoneEvent,
    ErrorEvent,
    KnowledgeBase,
    LocalFunctionTool,
    McpCallResult,
    Message,
    MessageAppendedEvent,
    ProgressEvent,
    RemoteMcpTool,
    Role,
    StreamDeltaEvent,
    VectorSet,
    Chunk,
    ImageAttachment,
)
from tests.conftest import MockEmbeddingProvider, MockMcpTransport, MockModelProvider, tool_call

ADD = LocalFunctionTool(name="add", body='return args["a"] + args["b"]')


def _loop(provider, executor, loop_config):
    return ConversationalLoop(provider, executor=executor, config=loop_config)


class TestBasicTurns:
    async def test_plain_answer(self, executor, loop_config):
        provider = MockModelProvider([Message.assistant("Hello!")])
        result = await _loop(provider, executor, loop_config).run("Be nice.", "hi")
        assert result.success
        assert [m.role for m in result.messages] == [Role.USER, Role.ASSISTANT]
        assert result.messages[-1].content == "Hello!"
        assert provider.calls[0].system_prompt == "Be nice."

    async def test_tool_round_trip(self, executor, loop_config):
        provider = MockModelProvider([
            Message.assistant(None, [tool_call("c1", "add", {"a": 1, "b": 2})]),
            Message.assistant("The sum is 3"),
        ])
        result = await _loop(provider, executor, loop_config).run("", "add 1 and 2", tools=[ADD])
        assert result.success
        tool_msg = result.messages[2]
        assert tool_msg.role == Role.TOOL
        assert tool_msg.tool_call_id == "c1"
        assert tool_msg.content == "3"
        # the second model call sees the tool result
        assert provider.calls[1].messages[-1].content == "3"
        assert provider.calls[0].tools[0]["name"] == "add"

    async def test_parallel_results_in_call_order(self, executor, loop_config):
        slow = LocalFunctionTool(name="slow", body="x = 0\nfor i in range(200000):\n    x += i\nreturn 'slow'")
        fast = LocalFunctionTool(name="fast", body="return 'fast'")
        provider = MockModelProvider([
            Message.assistant(None, [tool_call("c1", "slow"), tool_call("c2", "fast")]),
            Message.assistant("ok"),
        ])
        result = await _loop(provider, executor, loop_config).run("", "go", tools=[slow, fast])
        assert [m.tool_call_id for m in result.messages if m.role == Role.TOOL] == ["c1", "c2"]

    async def test_tool_failure_is_not_fatal(self, executor, loop_config):
        provider = MockModelProvider([
            Message.assistant(None, [tool_call("c1", "nope")]),
            Message.assistant("sorry"),
        ])
        result = await _loop(provider, executor, loop_config).run("", "go", tools=[ADD])
        assert result.success
        assert result.messages[2].content == "Error: Tool 'nope' not found"

    async def test_images_attached_to_user_turn(self, executor, loop_config):
        provider = MockModelProvider([Message.assistant("a cat")])
        image = ImageAttachment("data:image/png;base64,AAAA")
        result = await _loop(provider, executor, loop_config).run("", "what is this?", images=[image])
        assert result.messages[0].images == [image]


class TestIterationBound:
    async def test_stops_after_exactly_n_model_calls(self, executor, loop_config):
        provider = MockModelProvider(
            [Message.assistant(None, [tool_call("c", "add", {"a": 1, "b": 1})])], repeat_last=True
        )
        result = await _loop(provider, executor, loop_config).run("", "loop", tools=[ADD], max_iterations=3)
        assert not result.success
        assert result.error == MAX_ITERATIONS_REACHED
        assert len(provider.calls) == 3
        assert sum(1 for m in result.messages if m.role == Role.TOOL) == 3

    async def test_resume_extends_history(self, executor, loop_config):
        provider = MockModelProvider(
            [Message.assistant(None, [tool_call("c", "add", {"a": 1, "b": 1})])], repeat_last=True
        )
        loop = _loop(provider, executor, loop_config)
        first = await loop.run("", "loop", tools=[ADD], max_iterations=2)
        snapshot = [m.to_dict() for m in first.messages]

        provider.replies = [Message.assistant("finished")]
        provider.repeat_last = False
        second = await loop.run("", None, initial_messages=first.messages, tools=[ADD])
        assert second.success
        assert [m.to_dict() for m in second.messages[:len(snapshot)]] == snapshot
        assert len(second.messages) == len(snapshot) + 1
        assert [m.to_dict() for m in first.messages] == snapshot

    async def test_empty_user_message_continues(self, executor, loop_config):
        provider = MockModelProvider([Message.assistant("continued")])
        result = await _loop(provider, executor, loop_config).run(
            "", "", initial_messages=[Message.user("earlier")]
        )
        assert result.success
        assert [m.content for m in result.messages] == ["earlier", "continued"]

    async def test_empty_history_fails(self, executor, loop_config):
        provider = MockModelProvider()
        result = await _loop(provider, executor, loop_config).run("", None)
        assert not result.success
        assert result.error == EMPTY_CONVERSATION
        assert provider.calls == []


class TestFailures:
    async def test_provider_error_returns_failure(self, executor, loop_config):
        provider = MockModelProvider([LLMError("LLM_HTTP_ERROR", "mock", "server exploded", 500)])
        result = await _loop(provider, executor, loop_config).run("", "hi")
        assert not result.success
        assert result.error == "server exploded"
        assert [m.role for m in result.messages] == [Role.USER]

    async def test_abort_before_model_call(self, executor, loop_config):
        signal = asyncio.Event()
        signal.set()
        provider = MockModelProvider([Message.assistant("never")])
        result = await _loop(provider, executor, loop_config).run("", "hi", signal=signal)
        assert result.error == CONVERSATION_ABORTED
        assert provider.calls == []

    async def test_abort_during_model_call(self, executor, loop_config):
        signal = asyncio.Event()
        provider = MockModelProvider([Message.assistant("late")], delay=5)
        loop = _loop(provider, executor, loop_config)
        task = asyncio.create_task(loop.run("", "hi", signal=signal))
        await asyncio.sleep(0.05)
        signal.set()
        result = await asyncio.wait_for(task, 2)
        assert result.error == CONVERSATION_ABORTED
        assert [m.role for m in result.messages] == [Role.USER]

    async def test_abort_keeps_only_settled_tool_results(self, sandbox, loop_config):
        mcp = MockMcpTransport(
            {("srv", "quick"): McpCallResult(True, result="quick done")}
        )
        hang = MockMcpTransport(delay=30)

        class Mixed:
            async def call_tool(self, server_id, name, arguments, time_limit_ms):
                if name == "quick":
                    return await mcp.call_tool(server_id, name, arguments, time_limit_ms)
                return await hang.call_tool(server_id, name, arguments, time_limit_ms)

        executor = ToolExecutor(sandbox=sandbox, mcp=Mixed())
        tools = [RemoteMcpTool("srv", "quick"), RemoteMcpTool("srv", "slow1"), RemoteMcpTool("srv", "slow2")]
        provider = MockModelProvider([
            Message.assistant(None, [tool_call("c1", "slow1"), tool_call("c2", "quick"), tool_call("c3", "slow2")]),
            Message.assistant("never"),
        ])
        signal = asyncio.Event()
        loop = _loop(provider, executor, loop_config)
        task = asyncio.create_task(loop.run("", "go", tools=tools, signal=signal, time_limit_ms=60000))
        await asyncio.sleep(0.2)
        signal.set()
        result = await asyncio.wait_for(task, 2)
        assert result.error == CONVERSATION_ABORTED
        tool_msgs = [m for m in result.messages if m.role == Role.TOOL]
        assert [m.tool_call_id for m in tool_msgs] == ["c2"]
        assert len(provider.calls) == 1


class TestEvents:
    async def test_stream_event_sequence(self, executor, loop_config):
        provider = MockModelProvider([
            Message.assistant("Let me add", [tool_call("c1", "add", {"a": 2, "b": 3})]),
            Message.assistant("Five"),
        ])
        events = [e async for e in _loop(provider, executor, loop_config).stream("", "add", tools=[ADD])]
        assert isinstance(events[0], MessageAppendedEvent)
        assert isinstance(events[-1], DoneEvent)
        assert events[-1].result.success
        text = "".join(e.text for e in events if isinstance(e, StreamDeltaEvent))
        assert text == "Let me addFive"
        assert any(isinstance(e, ProgressEvent) and e.stage == "tools" for e in events)
        appended = [e.message.role for e in events if isinstance(e, MessageAppendedEvent)]
        assert appended == [Role.USER, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]

    async def test_streamed_tool_call_arguments_reassembled(self, executor, loop_config):
        provider = MockModelProvider([
            Message.assistant(None, [tool_call("c1", "add", {"a": 10, "b": 20})]),
            Message.assistant("30"),
        ])
        result = await _loop(provider, executor, loop_config).run(
            "", "add", tools=[ADD], on_stream_chunk=lambda text, role: None
        )
        assert result.messages[1].tool_calls[0].function.arguments == '{"a": 10, "b": 20}'
        assert result.messages[2].content == "30"

    async def test_soft_stop_emits_recoverable_error(self, executor, loop_config):
        provider = MockModelProvider(
            [Message.assistant(None, [tool_call("c", "add", {"a": 1, "b": 1})])], repeat_last=True
        )
        events = [
            e async for e in _loop(provider, executor, loop_config).stream("", "x", tools=[ADD], max_iterations=1)
        ]
        errors = [e for e in events if isinstance(e, ErrorEvent)]
        assert errors[0].error == MAX_ITERATIONS_REACHED
        assert errors[0].recoverable

    async def test_callbacks(self, executor, loop_config):
        chunks, updates = [], []
        provider = MockModelProvider([Message.assistant("streamed text")])
        await _loop(provider, executor, loop_config).run(
            "", "hi",
            on_stream_chunk=lambda text, role: chunks.append((text, role)),
            on_message_update=lambda messages: updates.append(len(messages)),
        )
        assert "".join(t for t, _ in chunks) == "streamed text"
        assert all(role == "assistant" for _, role in chunks)
        assert updates == [1, 2]

    async def test_no_streaming_without_chunk_callback(self, executor, loop_config):
        provider = MockModelProvider([Message.assistant("whole")])
        updates = []
        result = await _loop(provider, executor, loop_config).run(
            "", "hi", on_message_update=lambda messages: updates.append(messages[-1].content)
        )
        assert result.success
        assert updates == ["hi", "whole"]

    async def test_raising_callback_is_ignored(self, executor, loop_config):
        def bad(*args):
            raise RuntimeError("ui crashed")

        provider = MockModelProvider([Message.assistant("fine")])
        result = await _loop(provider, executor, loop_config).run(
            "", "hi", on_stream_chunk=bad, on_message_update=bad
        )
        assert result.success


class TestNestedAgents:
    async def test_agent_tool_runs_nested_loop(self, executor, loop_config):
        helper = AgentTool(AgentSpec(id="a1", name="helper", instructions="You add.", selected_tools=["add"]))
        provider = MockModelProvider([
            Message.assistant(None, [tool_call("c1", "helper", {"request": "add 2 and 2"})]),
            # nested loop
            Message.assistant(None, [tool_call("n1", "add", {"a": 2, "b": 2})]),
            Message.assistant("It is 4"),
            # outer loop resumes
            Message.assistant("Helper says 4"),
        ])
        result = await _loop(provider, executor, loop_config).run("", "ask helper", tools=[ADD, helper])
        assert result.success
        assert result.messages[2].content == "It is 4"
        nested_call = provider.calls[1]
        assert nested_call.system_prompt == "You add."
        assert nested_call.messages[0].content == "add 2 and 2"
        assert [t["name"] for t in nested_call.tools] == ["add"]

    async def test_nested_stream_deltas_use_tool_role(self, executor, loop_config):
        helper = AgentTool(AgentSpec(id="a1", name="helper"))
        provider = MockModelProvider([
            Message.assistant(None, [tool_call("c1", "helper", {"request": "hi"})]),
            Message.assistant("nested words"),
            Message.assistant("outer words"),
        ])
        chunks = []
        await _loop(provider, executor, loop_config).run(
            "", "go", tools=[helper], on_stream_chunk=lambda text, role: chunks.append((text, role))
        )
        assert "".join(t for t, r in chunks if r == "tool") == "nested words"
        assert "".join(t for t, r in chunks if r == "assistant") == "outer words"

    async def test_self_recursive_agent_is_bounded(self, executor, loop_config):
        executor.max_agent_depth = 2
        me = AgentTool(AgentSpec(id="a1", name="me", selected_tools=["me"], max_iterations=1))
        provider = MockModelProvider(
            [Message.assistant(None, [tool_call("c", "me", {"request": "again"})])], repeat_last=True
        )
        result = await _loop(provider, executor, loop_config).run("", "go", tools=[me], max_iterations=1)
        assert result.error == MAX_ITERATIONS_REACHED
        # outer + depth 1 + depth 2; depth 3 is refused without a model call
        assert len(provider.calls) == 3


class TestRAGAugmentation:
    async def test_user_turn_is_augmented(self, executor, loop_config):
        kb = KnowledgeBase(
            id="kb1", name="Pets",
            vectors=VectorSet("emb", "mock", [Chunk("f1", 0, "cats purr", [1.0, 0.0, 0.0, 0.0], "pets.txt")]),
        )
        retriever = RAGRetriever(EmbeddingEngine({"mock": MockEmbeddingProvider()}))
        rag = RAGAugmentation(retriever, [kb], "emb", "mock")
        provider = MockModelProvider([Message.assistant("They purr.")])
        result = await _loop(provider, executor, loop_config).run("", "what do cat do", rag=rag)
        content = result.messages[0].content
        assert content.startswith("[Context from knowledge bases (1 results)]")
        assert content.endswith("[User Query]\nwhat do cat do")

    async def test_augmentation_failure_keeps_query(self, executor, loop_config):
        kb = KnowledgeBase(id="kb1", vectors=VectorSet("emb", "mock", [Chunk("f1", 0, "x", [1.0, 0, 0, 0])]))
        retriever = RAGRetriever(EmbeddingEngine({"mock": MockEmbeddingProvider(fail=True)}))
        provider = MockModelProvider([Message.assistant("ok")])
        result = await _loop(provider, executor, loop_config).run(
            "", "cat?", rag=RAGAugmentation(retriever, [kb], "emb", "mock")
        )
        assert result.messages[0].content == "cat?"


class TestRunLimits:
    async def test_explicit_zero_iterations_rejected(self, executor, loop_config):
        provider = MockModelProvider([Message.assistant("never")])
        with pytest.raises(ValueError, match="max_iterations"):
            await _loop(provider, executor, loop_config).run("", "hi", max_iterations=0)
        assert provider.calls == []

    async def test_explicit_zero_time_limit_rejected(self, executor, loop_config):
        provider = MockModelProvider([Message.assistant("never")])
        with pytest.raises(ValueError, match="time_limit_ms"):
            await _loop(provider, executor, loop_config).run("", "hi", time_limit_ms=0)

    async def test_none_uses_configured_defaults(self, executor):
        provider = MockModelProvider(
            [Message.assistant(None, [tool_call("c", "add", {"a": 1, "b": 1})])], repeat_last=True
        )
        loop = ConversationalLoop(provider, executor=executor, config=LoopConfig(max_iterations=2))
        result = await loop.run("", "go", tools=[ADD], max_iterations=None)
        assert result.error == MAX_ITERATIONS_REACHED
        assert len(provider.calls) == 2


def test_duplicate_tool_names_are_caller_errors(executor, loop_config):
    loop = _loop(MockModelProvider(), executor, loop_config)
    with pytest.raises(ValueError):
        asyncio.run(loop.run("", "hi", tools=[ADD, ADD]))
