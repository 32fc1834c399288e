# llmcli/providers/claude_client.py
"""
Anthropic Messages API client.

Requests are built from the provider-agnostic transcript; streamed replies are
translated into the normalized chunk vocabulary by `translate_stream`.
"""
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from llmcli.config_utils import Config
from llmcli.data_models import (
    AssistantMessage, ContentBlockEnd, Event, Message, NormalizedChunk, StreamEnd, TextChunk,
    ToolCall, ToolCallArgument, ToolCallStart, ToolDefinition, ToolResultMessage, UserMessage,
)
from llmcli.errors import ResponseFormatError, StreamError
from llmcli.providers.transport import create_http_client, decode_event_data, open_event_stream, post_json

logger = logging.getLogger(__name__)

API_VERSION = "2023-06-01"
API_BASE_URL = "https://api.anthropic.com/v1"


# --- Wire models (only the fields we read) ---

class ContentBlock(BaseModel):
    type: str
    text: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    input: Any = None
    model_config = ConfigDict(extra='ignore')


class ErrorBody(BaseModel):
    type: str = "error"
    message: str = ""
    model_config = ConfigDict(extra='ignore')


class StreamEvent(BaseModel):
    type: str
    index: Optional[int] = None
    content_block: Optional[ContentBlock] = None
    delta: Optional[Dict[str, Any]] = None
    error: Optional[ErrorBody] = None
    model_config = ConfigDict(extra='ignore')


class MessageResponse(BaseModel):
    content: List[ContentBlock]
    model_config = ConfigDict(extra='ignore')


# --- Transcript -> request ---

def _tool_result_content(content: Any) -> str:
    return content if isinstance(content, str) else json.dumps(content)


def to_claude_messages(messages: Sequence[Message]) -> List[Dict[str, Any]]:
    """
    Converts the transcript to Claude's message list. Tool results are sent
    as `tool_result` blocks in a user turn; consecutive results share one turn.
    """
    claude_messages: List[Dict[str, Any]] = []
    for message in messages:
        if isinstance(message, UserMessage):
            claude_messages.append({"role": "user", "content": message.content})
        elif isinstance(message, AssistantMessage):
            if not message.tool_calls:
                claude_messages.append({"role": "assistant", "content": message.content})
                continue
            blocks: List[Dict[str, Any]] = []
            if message.content:
                blocks.append({"type": "text", "text": message.content})
            for call in message.tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": call.arguments if isinstance(call.arguments, dict) else {},
                })
            claude_messages.append({"role": "assistant", "content": blocks})
        elif isinstance(message, ToolResultMessage):
            block = {
                "type": "tool_result",
                "tool_use_id": message.tool_call_id,
                "content": _tool_result_content(message.content),
            }
            previous = claude_messages[-1] if claude_messages else None
            if previous and previous["role"] == "user" and isinstance(previous["content"], list):
                previous["content"].append(block)
            else:
                claude_messages.append({"role": "user", "content": [block]})
    return claude_messages


def to_claude_tools(tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
    return [
        {"name": tool.name, "description": tool.description, "input_schema": tool.parameters}
        for tool in tools
    ]


# --- Stream translation ---

async def translate_stream(events: AsyncIterator[Event]) -> AsyncIterator[NormalizedChunk]:
    """
    Maps Claude stream events to normalized chunks.
    message_start, message_delta and ping carry nothing we need and are skipped.
    """
    open_tool_index: Optional[int] = None
    async for event in events:
        try:
            stream_event = StreamEvent.model_validate(decode_event_data(event, "Claude"))
        except ValidationError as e:
            raise ResponseFormatError(f"Unexpected Claude stream event {event.data!r}: {e}") from e

        if stream_event.type == "content_block_start":
            block = stream_event.content_block
            if block is not None and block.type == "tool_use":
                if open_tool_index is not None:
                    raise StreamError(
                        f"Tool call in block {stream_event.index} started while block {open_tool_index} is still open"
                    )
                open_tool_index = stream_event.index
                yield ToolCallStart(id=block.id or "", name=block.name or "")
            elif block is not None and block.type == "text" and block.text:
                yield TextChunk(text=block.text)
        elif stream_event.type == "content_block_delta":
            delta = stream_event.delta or {}
            delta_type = delta.get("type")
            if delta_type == "text_delta":
                yield TextChunk(text=delta.get("text", ""))
            elif delta_type == "input_json_delta":
                if open_tool_index is None or stream_event.index != open_tool_index:
                    raise StreamError(
                        f"Tool call arguments for block {stream_event.index} arrived outside its tool call"
                    )
                yield ToolCallArgument(fragment=delta.get("partial_json", ""))
        elif stream_event.type == "content_block_stop":
            if stream_event.index == open_tool_index:
                open_tool_index = None
            yield ContentBlockEnd()
        elif stream_event.type == "message_stop":
            yield StreamEnd.stop()
        elif stream_event.type == "error":
            error = stream_event.error or ErrorBody()
            yield StreamEnd.error(f"{error.type}: {error.message}")
        else:
            logger.debug("Skipping Claude event type %s", stream_event.type)


class ClaudeClient:
    def __init__(
        self,
        api_key: str,
        config: Config,
        http_client: Optional[httpx.AsyncClient] = None,
        beta: Optional[List[str]] = None,
    ):
        self.api_key = api_key
        self.config = config
        self.beta = beta
        self.http_client = http_client or create_http_client()

    def with_beta(self, beta_features: List[str]) -> "ClaudeClient":
        self.beta = beta_features
        return self

    def build_headers(self, stream: bool) -> Dict[str, str]:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }
        if self.beta:
            headers["anthropic-beta"] = ",".join(self.beta)
        if stream:
            headers["accept"] = "text/event-stream"
        return headers

    def build_request(
        self, messages: Sequence[Message], tools: Optional[Sequence[ToolDefinition]], stream: bool
    ) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "model": self.config.get_model(),
            "max_tokens": self.config.get_max_tokens(),
            "messages": to_claude_messages(messages),
        }
        if stream:
            request["stream"] = True
        if self.config.system_prompt:
            request["system"] = self.config.system_prompt
        if tools:
            request["tools"] = to_claude_tools(tools)
        return request

    async def query(
        self, messages: Sequence[Message], tools: Optional[Sequence[ToolDefinition]] = None
    ) -> List[Message]:
        payload = await post_json(
            self.http_client, f"{API_BASE_URL}/messages", self.build_headers(stream=False),
            self.build_request(messages, tools, stream=False),
        )
        try:
            response = MessageResponse.model_validate(payload)
        except ValidationError as e:
            raise ResponseFormatError(f"Failed to parse Claude response: {e}") from e

        content = "\n".join(block.text for block in response.content if block.type == "text" and block.text)
        tool_calls = [
            ToolCall(id=block.id or "", name=block.name or "", arguments=block.input)
            for block in response.content if block.type == "tool_use"
        ]
        return [AssistantMessage(content=content, tool_calls=tool_calls or None)]

    async def query_streaming(
        self, messages: Sequence[Message], tools: Optional[Sequence[ToolDefinition]] = None
    ) -> AsyncIterator[NormalizedChunk]:
        request = self.build_request(messages, tools, stream=True)
        async with open_event_stream(
            self.http_client, f"{API_BASE_URL}/messages", self.build_headers(stream=True), request
        ) as events:
            async for chunk in translate_stream(events):
                yield chunk

    async def aclose(self):
        await self.http_client.aclose()
