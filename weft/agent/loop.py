"""
Conversational Loop

Drives a model across turns: call the model, append its reply, execute any
requested tools concurrently, feed every result back, repeat until the model
stops asking for tools, the iteration budget runs out, or the run is aborted.

``stream`` yields ``LoopEvent``s and always finishes with one ``DoneEvent``.
``run`` drains ``stream`` into fire-and-forget callbacks and returns the result.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Callable, Iterable
from typing import Any

from weft.config import LoopConfig
from weft.errors import AbortedError
from weft.infra.logging import get_logger
from weft.knowledge.retriever import RAGAugmentation
from weft.tools.executor import EventSink, ToolExecutor
from weft.tools.registry import ToolRegistry
from weft.types import (
    AgentSpec,
    ChatParams,
    DoneEvent,
    ErrorEvent,
    ImageAttachment,
    LoopEvent,
    LoopResult,
    Message,
    MessageAppendedEvent,
    ModelProvider,
    ProgressEvent,
    StreamDeltaEvent,
    Tool,
    ToolCall,
)
from weft.utils.abort import is_aborted, race_abort
from weft.utils.callbacks import CallbackDispatcher
from weft.utils.stream_aggregator import StreamAggregator

logger = get_logger(__name__)

MAX_ITERATIONS_REACHED = "Maximum tool execution iterations reached"
CONVERSATION_ABORTED = "Conversation aborted by user"
EMPTY_CONVERSATION = "No messages to process - conversation cannot start with empty state"


class ConversationalLoop:
    def __init__(
        self,
        provider: ModelProvider,
        executor: ToolExecutor | None = None,
        config: LoopConfig | None = None,
    ) -> None:
        self.provider = provider
        self.config = config or LoopConfig()
        self.executor = executor or ToolExecutor(max_agent_depth=self.config.max_agent_depth)
        if self.executor.agent_runner is None:
            self.executor.agent_runner = self._run_agent
        self._notify = CallbackDispatcher()

    async def stream(
        self,
        system_prompt: str = "",
        user_message: str | None = None,
        *,
        images: list[ImageAttachment] | None = None,
        initial_messages: Iterable[Message] = (),
        tools: ToolRegistry | Iterable[Tool] | None = None,
        max_iterations: int | None = None,
        time_limit_ms: int | None = None,
        json_schema: dict[str, Any] | None = None,
        json_strict: bool = False,
        model: str | None = None,
        signal: asyncio.Event | None = None,
        streaming: bool = True,
        rag: RAGAugmentation | None = None,
        depth: int = 0,
        catalogue: ToolRegistry | None = None,
    ) -> AsyncGenerator[LoopEvent, None]:
        registry = ToolRegistry.coerce(tools)
        catalogue = catalogue or registry
        if max_iterations is None:
            max_iterations = self.config.max_iterations
        if time_limit_ms is None:
            time_limit_ms = self.config.time_limit_ms
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")
        if time_limit_ms < 1:
            raise ValueError(f"time_limit_ms must be at least 1, got {time_limit_ms}")
        messages: list[Message] = list(initial_messages)

        if user_message:
            content = user_message
            if rag is not None:
                try:
                    content = await race_abort(rag.apply(user_message, signal), signal)
                except AbortedError:
                    for event in self._finish(messages, CONVERSATION_ABORTED, recoverable=True):
                        yield event
                    return
            seeded = Message.user(content, images)
            messages.append(seeded)
            yield MessageAppendedEvent(seeded, list(messages))

        if not messages:
            for event in self._finish(messages, EMPTY_CONVERSATION):
                yield event
            return

        schemas = registry.schemas()
        iteration = 0
        while iteration < max_iterations:
            if is_aborted(signal):
                for event in self._finish(messages, CONVERSATION_ABORTED, recoverable=True):
                    yield event
                return
            iteration += 1

            params = ChatParams(
                messages=list(messages),
                system_prompt=system_prompt,
                tools=schemas,
                json_schema=json_schema,
                json_strict=json_strict,
                model=model,
                signal=signal,
            )
            try:
                if streaming:
                    aggregator = StreamAggregator()
                    async for delta in self._iter_stream(params, signal):
                        aggregator.add(delta)
                        if delta.content_delta:
                            yield StreamDeltaEvent(delta.content_delta, "assistant")
                    reply = aggregator.message()
                else:
                    reply = await race_abort(self.provider.complete(params), signal)
            except AbortedError:
                for event in self._finish(messages, CONVERSATION_ABORTED, recoverable=True):
                    yield event
                return
            except Exception as e:
                logger.warning("model_call_failed", iteration=iteration, error=str(e))
                for event in self._finish(messages, str(e) or type(e).__name__):
                    yield event
                return

            messages.append(reply)
            yield MessageAppendedEvent(reply, list(messages))

            if not reply.tool_calls:
                logger.debug("loop_complete", iterations=iteration, depth=depth)
                yield DoneEvent(LoopResult(True, list(messages)))
                return

            aborted = False
            async for event in self._execute_tools(
                reply.tool_calls, registry, catalogue, time_limit_ms, signal, depth
            ):
                if isinstance(event, Message):
                    messages.append(event)
                    yield MessageAppendedEvent(event, list(messages))
                elif event is None:
                    aborted = True
                else:
                    yield event
            if aborted:
                for event in self._finish(messages, CONVERSATION_ABORTED, recoverable=True):
                    yield event
                return

        logger.info("loop_soft_stop", iterations=iteration, depth=depth)
        for event in self._finish(messages, MAX_ITERATIONS_REACHED, recoverable=True):
            yield event

    async def run(
        self,
        system_prompt: str = "",
        user_message: str | None = None,
        *,
        images: list[ImageAttachment] | None = None,
        initial_messages: Iterable[Message] = (),
        tools: ToolRegistry | Iterable[Tool] | None = None,
        max_iterations: int | None = None,
        time_limit_ms: int | None = None,
        json_schema: dict[str, Any] | None = None,
        json_strict: bool = False,
        model: str | None = None,
        on_stream_chunk: Callable[[str, str], Any] | None = None,
        on_message_update: Callable[[list[Message]], Any] | None = None,
        on_progress: Callable[[str, int, int], Any] | None = None,
        signal: asyncio.Event | None = None,
        rag: RAGAugmentation | None = None,
    ) -> LoopResult:
        """Run to completion. The model call streams only when ``on_stream_chunk`` is given."""
        result = LoopResult(False, list(initial_messages), "Loop finished without a result")
        async for event in self.stream(
            system_prompt,
            user_message,
            images=images,
            initial_messages=initial_messages,
            tools=tools,
            max_iterations=max_iterations,
            time_limit_ms=time_limit_ms,
            json_schema=json_schema,
            json_strict=json_strict,
            model=model,
            signal=signal,
            streaming=on_stream_chunk is not None,
            rag=rag,
        ):
            if isinstance(event, StreamDeltaEvent):
                self._notify(on_stream_chunk, event.text, event.role)
            elif isinstance(event, MessageAppendedEvent):
                self._notify(on_message_update, event.messages)
            elif isinstance(event, ProgressEvent):
                self._notify(on_progress, event.stage, event.current, event.total)
            elif isinstance(event, DoneEvent):
                result = event.result
        return result

    # -- Internals --

    async def _iter_stream(self, params: ChatParams, signal: asyncio.Event | None):
        it = self.provider.stream(params).__aiter__()
        try:
            while True:
                try:
                    delta = await race_abort(anext(it), signal)
                except StopAsyncIteration:
                    return
                yield delta
        finally:
            aclose = getattr(it, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _execute_tools(
        self,
        tool_calls: list[ToolCall],
        registry: ToolRegistry,
        catalogue: ToolRegistry,
        time_limit_ms: int,
        signal: asyncio.Event | None,
        depth: int,
    ) -> AsyncGenerator[LoopEvent | Message | None, None]:
        """Fan out one task per call; yield nested events as they arrive, then the
        tool messages in call order. On abort only settled results are yielded,
        followed by ``None``."""
        queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()

        def emit(event: LoopEvent) -> None:
            queue.put_nowait(("event", event))

        tasks: list[asyncio.Task] = []
        for i, tc in enumerate(tool_calls):
            task = asyncio.create_task(
                self.executor.execute(
                    tc, registry, time_limit_ms,
                    signal=signal, depth=depth, emit=emit, catalogue=catalogue,
                )
            )
            task.add_done_callback(lambda t, i=i: queue.put_nowait(("settled", i)))
            tasks.append(task)
        abort_watch = None
        if signal is not None:
            abort_watch = asyncio.create_task(signal.wait())
            abort_watch.add_done_callback(
                lambda t: None if t.cancelled() else queue.put_nowait(("abort", None))
            )

        results: dict[int, Message] = {}
        aborted = False
        try:
            while len(results) < len(tasks):
                kind, payload = await queue.get()
                if kind == "event":
                    yield payload
                elif kind == "abort":
                    aborted = True
                    break
                elif kind == "settled":
                    task = tasks[payload]
                    err = asyncio.CancelledError("Tool execution cancelled") if task.cancelled() else task.exception()
                    if isinstance(err, AbortedError):
                        aborted = True
                        break
                    if err is not None:
                        logger.error("tool_task_failed", tool=tool_calls[payload].function.name, error=str(err))
                        results[payload] = Message.tool(
                            tool_calls[payload].id,
                            f"Error executing tool: {err}",
                            name=tool_calls[payload].function.name,
                        )
                    else:
                        results[payload] = task.result()
                    yield ProgressEvent("tools", len(results), len(tasks))
        finally:
            for i, task in enumerate(tasks):
                if i not in results and task.done() and not task.cancelled() and task.exception() is None:
                    results[i] = task.result()
            for task in tasks:
                if not task.done():
                    task.cancel()
            if abort_watch is not None:
                abort_watch.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for i in range(len(tool_calls)):
            if i in results:
                yield results[i]
        if aborted:
            logger.info("tools_aborted", settled=len(results), total=len(tasks))
            yield None

    async def _run_agent(
        self,
        agent: AgentSpec,
        request: str,
        catalogue: ToolRegistry,
        signal: asyncio.Event | None,
        depth: int,
        emit: EventSink | None,
    ) -> LoopResult:
        result = LoopResult(False, [], "Agent loop finished without a result")
        async for event in self.stream(
            agent.instructions,
            request,
            tools=catalogue.select(agent.selected_tools),
            max_iterations=agent.max_iterations,
            json_schema=agent.json_schema,
            json_strict=agent.json_strict,
            model=agent.model,
            signal=signal,
            streaming=emit is not None,
            depth=depth,
            catalogue=catalogue,
        ):
            if isinstance(event, StreamDeltaEvent) and emit is not None:
                emit(StreamDeltaEvent(event.text, "tool"))
            elif isinstance(event, DoneEvent):
                result = event.result
        return result

    def _finish(
        self, messages: list[Message], error: str, recoverable: bool = False
    ) -> list[LoopEvent]:
        return [
            ErrorEvent(error, recoverable=recoverable),
            DoneEvent(LoopResult(False, list(messages), error)),
        ]
