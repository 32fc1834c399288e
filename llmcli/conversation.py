# llmcli/conversation.py
"""
Multi-turn conversation loop.

Each turn streams the model's reply to the terminal through the Formatter,
collects any tool calls it makes, runs them through the ToolRegistry and
feeds the results back as the next turn's input. The loop ends when a reply
contains no tool calls or the step budget is used up.
"""
import json
import logging
from typing import Any, AsyncIterator, List, Optional, Sequence, TextIO, Tuple

from llmcli.data_models import (
    AssistantMessage, ContentBlockEnd, Message, NormalizedChunk, StreamEnd, TextChunk,
    ToolCall, ToolCallArgument, ToolCallStart, ToolResultMessage, UserMessage,
)
from llmcli.errors import InvalidQueryError, StreamError, ToolCallsDisabledError, ToolError
from llmcli.formatter import Formatter
from llmcli.providers.llm import LLMClient
from llmcli.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ConversationState:
    """Append-only transcript of one run."""

    def __init__(self, initial_messages: Sequence[Message]):
        self.messages: List[Message] = list(initial_messages)

    def add_assistant_message(self, content: str, tool_calls: List[ToolCall]):
        self.messages.append(AssistantMessage(content=content, tool_calls=tool_calls or None))

    def add_tool_results(self, results: List[ToolResultMessage]):
        self.messages.extend(results)


class _PendingToolCall:
    def __init__(self, start: ToolCallStart):
        self.id = start.id
        self.name = start.name
        self.argument_buffer = ""

    def finalize(self) -> ToolCall:
        try:
            arguments: Any = json.loads(self.argument_buffer) if self.argument_buffer else None
        except json.JSONDecodeError:
            logger.debug("Malformed arguments for tool call %s: %r", self.id, self.argument_buffer)
            arguments = None
        return ToolCall(id=self.id, name=self.name, arguments=arguments)


class ConversationManager:
    def __init__(self, client: LLMClient, tool_registry: Optional[ToolRegistry], formatter: Formatter):
        self.client = client
        self.tool_registry = tool_registry
        self.formatter = formatter

    async def run(self, initial_messages: Sequence[Message], max_steps: int, sink: TextIO) -> List[Message]:
        """
        Runs up to `max_steps` model turns starting from `initial_messages` and
        returns the full transcript. Text is written to `sink` as it arrives.
        """
        for message in initial_messages:
            if isinstance(message, UserMessage) and not message.content.strip():
                raise InvalidQueryError("Query must not be empty")

        state = ConversationState(initial_messages)
        tool_definitions = self.tool_registry.get_tool_definitions() if self.tool_registry else None

        for step in range(max_steps):
            logger.debug("[Conversation] step: %d", step)
            stream = self.client.query_streaming(state.messages, tool_definitions)
            content, tool_calls = await self.write_llm_response(stream, sink)

            if not tool_calls:
                state.add_assistant_message(content, tool_calls)
                logger.debug("[Conversation] No tool calls, ending conversation")
                break

            tool_results = await self.handle_tool_calls(tool_calls)
            logger.debug("[Conversation] Tool results: %s", tool_results)
            state.add_assistant_message(content, tool_calls)
            state.add_tool_results(tool_results)
        else:
            logger.debug("[Conversation] Reached max_steps=%d", max_steps)

        return state.messages

    async def write_llm_response(self, stream: AsyncIterator[NormalizedChunk], sink: TextIO) -> Tuple[str, List[ToolCall]]:
        content = ""
        tool_calls: List[ToolCall] = []
        pending: Optional[_PendingToolCall] = None

        try:
            async for chunk in stream:
                if isinstance(chunk, TextChunk):
                    self.formatter.format_chunk(sink, chunk.text)
                    sink.flush()
                    content += chunk.text
                elif isinstance(chunk, ToolCallStart):
                    if pending is not None:
                        raise StreamError(
                            f"Tool call {chunk.id} started before tool call {pending.id} was closed"
                        )
                    pending = _PendingToolCall(chunk)
                elif isinstance(chunk, ToolCallArgument):
                    if pending is None:
                        logger.debug("Dropping tool argument fragment with no open tool call")
                        continue
                    pending.argument_buffer += chunk.fragment
                elif isinstance(chunk, ContentBlockEnd):
                    if pending is not None:
                        tool_calls.append(pending.finalize())
                        pending = None
                elif isinstance(chunk, StreamEnd):
                    if chunk.is_error:
                        raise StreamError(chunk.message or "Stream ended with an error")
                    break
        finally:
            await _close_stream(stream)
            self.formatter.finish(sink)
            sink.flush()

        if pending is not None:
            tool_calls.append(pending.finalize())
        return content, tool_calls

    async def handle_tool_calls(self, tool_calls: List[ToolCall]) -> List[ToolResultMessage]:
        """
        Executes the calls in order. A failing tool produces an error result
        for its call id instead of aborting the run; only calling tools when
        none are enabled is fatal.
        """
        if self.tool_registry is None:
            raise ToolCallsDisabledError(", ".join(call.describe() for call in tool_calls))

        results = []
        for call in tool_calls:
            try:
                result = await self.tool_registry.execute_tool(call.name, call.arguments)
            except ToolError as e:
                logger.warning("Tool call %s (%s) failed: %s", call.id, call.name, e)
                result = {"error": str(e)}
            results.append(ToolResultMessage(content=result, tool_call_id=call.id))
        return results


async def _close_stream(stream):
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()
