# llmcli/providers/openai_client.py
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from llmcli.config_utils import Config
from llmcli.data_models import (
    AssistantMessage, ContentBlockEnd, Event, Message, NormalizedChunk, StreamEnd, TextChunk,
    ToolCall, ToolCallArgument, ToolCallStart, ToolDefinition, ToolResultMessage, UserMessage,
)
from llmcli.errors import ResponseFormatError, StreamError
from llmcli.providers.transport import create_http_client, decode_event_data, open_event_stream, post_json

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.openai.com/v1"
DONE_SENTINEL = "[DONE]"
TEMPERATURE = 0.7

FINISH_REASON_ERRORS = {
    "length": "Response exceeded max tokens",
    "content_filter": "Content filter triggered",
}


# --- Wire models ---

class FunctionDelta(BaseModel):
    name: Optional[str] = None
    arguments: Optional[str] = None
    model_config = ConfigDict(extra='ignore')


class ToolCallDelta(BaseModel):
    index: int = 0
    id: Optional[str] = None
    function: FunctionDelta = Field(default_factory=FunctionDelta)
    model_config = ConfigDict(extra='ignore')


class ChoiceDelta(BaseModel):
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCallDelta]] = None
    model_config = ConfigDict(extra='ignore')


class ChunkChoice(BaseModel):
    index: int = 0
    delta: ChoiceDelta = Field(default_factory=ChoiceDelta)
    finish_reason: Optional[str] = None
    model_config = ConfigDict(extra='ignore')


class ChatCompletionChunk(BaseModel):
    choices: List[ChunkChoice] = []
    model_config = ConfigDict(extra='ignore')


class ResponseToolCall(BaseModel):
    id: str
    function: FunctionDelta
    model_config = ConfigDict(extra='ignore')


class ResponseMessage(BaseModel):
    content: Optional[str] = None
    tool_calls: Optional[List[ResponseToolCall]] = None
    model_config = ConfigDict(extra='ignore')


class ResponseChoice(BaseModel):
    message: ResponseMessage
    model_config = ConfigDict(extra='ignore')


class ChatCompletionObject(BaseModel):
    choices: List[ResponseChoice]
    model_config = ConfigDict(extra='ignore')


# --- Transcript -> request ---

def _json_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


def to_openai_messages(messages: Sequence[Message], system_prompt: Optional[str] = None) -> List[Dict[str, Any]]:
    openai_messages: List[Dict[str, Any]] = []
    if system_prompt:
        openai_messages.append({"role": "system", "content": system_prompt})
    for message in messages:
        if isinstance(message, UserMessage):
            openai_messages.append({"role": "user", "content": message.content})
        elif isinstance(message, AssistantMessage):
            entry: Dict[str, Any] = {"role": "assistant", "content": message.content}
            if message.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.arguments if call.arguments is not None else {}),
                        },
                    }
                    for call in message.tool_calls
                ]
            openai_messages.append(entry)
        elif isinstance(message, ToolResultMessage):
            openai_messages.append({
                "role": "tool",
                "content": _json_text(message.content),
                "tool_call_id": message.tool_call_id,
            })
    return openai_messages


def to_openai_tools(tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {"name": tool.name, "description": tool.description, "parameters": tool.parameters},
        }
        for tool in tools
    ]


def _parse_arguments(raw: Optional[str]) -> Any:
    try:
        return json.loads(raw) if raw else None
    except json.JSONDecodeError:
        return None


# --- Stream translation ---

async def translate_stream(events: AsyncIterator[Event]) -> AsyncIterator[NormalizedChunk]:
    """
    Maps Chat Completions chunks to normalized chunks.

    OpenAI never sends an explicit "tool call finished" marker, so the open
    call is closed when the next one starts or when the choice finishes.
    Argument fragments must belong to the call that was opened last.
    """
    open_call_index: Optional[int] = None
    async for event in events:
        if event.data == DONE_SENTINEL:
            continue
        payload = decode_event_data(event, "OpenAI")
        if "error" in payload:
            error = payload["error"] or {}
            yield StreamEnd.error(error.get("message", "Unknown OpenAI error") if isinstance(error, dict) else str(error))
            continue
        try:
            chunk = ChatCompletionChunk.model_validate(payload)
        except ValidationError as e:
            raise ResponseFormatError(f"Unexpected OpenAI stream event {event.data!r}: {e}") from e

        for choice in chunk.choices:
            delta = choice.delta
            if delta.content:
                yield TextChunk(text=delta.content)
            for call_delta in delta.tool_calls or []:
                if call_delta.id and call_delta.function.name:
                    if open_call_index is not None:
                        yield ContentBlockEnd()
                    open_call_index = call_delta.index
                    yield ToolCallStart(id=call_delta.id, name=call_delta.function.name)
                if call_delta.function.arguments:
                    if open_call_index is None or call_delta.index != open_call_index:
                        raise StreamError(
                            f"Interleaved tool call arguments: got index {call_delta.index} "
                            f"while tool call {open_call_index} is open"
                        )
                    yield ToolCallArgument(fragment=call_delta.function.arguments)

            if choice.finish_reason is None:
                continue
            logger.debug("OpenAI choice %d finished: %s", choice.index, choice.finish_reason)
            if open_call_index is not None:
                yield ContentBlockEnd()
                open_call_index = None
            if choice.finish_reason in FINISH_REASON_ERRORS:
                yield StreamEnd.error(FINISH_REASON_ERRORS[choice.finish_reason])
            else:
                # "stop" and "tool_calls" both end the turn normally.
                yield StreamEnd.stop()


class OpenAIClient:
    def __init__(self, api_key: str, config: Config, http_client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key
        self.config = config
        self.http_client = http_client or create_http_client()

    def build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def build_request(
        self, messages: Sequence[Message], tools: Optional[Sequence[ToolDefinition]], stream: bool
    ) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "model": self.config.get_model(),
            "messages": to_openai_messages(messages, self.config.system_prompt),
            "temperature": TEMPERATURE,
            "max_completion_tokens": self.config.get_max_tokens(),
            "stream": stream,
        }
        if tools:
            request["tools"] = to_openai_tools(tools)
        return request

    async def query(
        self, messages: Sequence[Message], tools: Optional[Sequence[ToolDefinition]] = None
    ) -> List[Message]:
        payload = await post_json(
            self.http_client, f"{API_BASE_URL}/chat/completions", self.build_headers(),
            self.build_request(messages, tools, stream=False),
        )
        try:
            response = ChatCompletionObject.model_validate(payload)
        except ValidationError as e:
            raise ResponseFormatError(f"Failed to parse OpenAI response: {e}") from e

        result: List[Message] = []
        for choice in response.choices:
            tool_calls = [
                ToolCall(id=call.id, name=call.function.name or "", arguments=_parse_arguments(call.function.arguments))
                for call in choice.message.tool_calls or []
            ]
            result.append(AssistantMessage(content=choice.message.content or "", tool_calls=tool_calls or None))
        return result

    async def query_streaming(
        self, messages: Sequence[Message], tools: Optional[Sequence[ToolDefinition]] = None
    ) -> AsyncIterator[NormalizedChunk]:
        request = self.build_request(messages, tools, stream=True)
        async with open_event_stream(
            self.http_client, f"{API_BASE_URL}/chat/completions", self.build_headers(), request
        ) as events:
            async for chunk in translate_stream(events):
                yield chunk

    async def aclose(self):
        await self.http_client.aclose()
