# llmcli/data_models.py
from datetime import timedelta
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict


class Event(BaseModel):
    """One Server-Sent Event. `data` is always present; the rest is optional."""
    id: Optional[str] = None
    event_type: Optional[str] = None
    data: str
    retry: Optional[timedelta] = None
    model_config = ConfigDict(extra='ignore', frozen=True)


# --- Transcript ---

class ToolCall(BaseModel):
    id: str
    name: str
    arguments: Any = None  # parsed JSON, None when the model sent malformed arguments
    model_config = ConfigDict(extra='ignore', frozen=True)

    def describe(self) -> str:
        return f"{self.name}({self.arguments})"


class UserMessage(BaseModel):
    role: Literal["user"] = "user"
    content: str
    model_config = ConfigDict(extra='ignore', frozen=True)


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str = ""
    tool_calls: Optional[List[ToolCall]] = None
    model_config = ConfigDict(extra='ignore', frozen=True)


class ToolResultMessage(BaseModel):
    role: Literal["tool"] = "tool"
    content: Any
    tool_call_id: str
    model_config = ConfigDict(extra='ignore', frozen=True)


Message = Union[UserMessage, AssistantMessage, ToolResultMessage]


class ToolDefinition(BaseModel):
    name: str
    description: str
    parameters: Dict[str, Any]
    model_config = ConfigDict(extra='ignore', frozen=True)


# --- Normalized stream chunks ---

class TextChunk(BaseModel):
    text: str
    model_config = ConfigDict(frozen=True)


class ToolCallStart(BaseModel):
    id: str
    name: str
    model_config = ConfigDict(frozen=True)


class ToolCallArgument(BaseModel):
    fragment: str
    model_config = ConfigDict(frozen=True)


class ContentBlockEnd(BaseModel):
    model_config = ConfigDict(frozen=True)


class StreamEnd(BaseModel):
    reason: Literal["stop", "error"]
    message: Optional[str] = None
    model_config = ConfigDict(frozen=True)

    @classmethod
    def stop(cls) -> "StreamEnd":
        return cls(reason="stop")

    @classmethod
    def error(cls, message: str) -> "StreamEnd":
        return cls(reason="error", message=message)

    @property
    def is_error(self) -> bool:
        return self.reason == "error"


NormalizedChunk = Union[TextChunk, ToolCallStart, ToolCallArgument, ContentBlockEnd, StreamEnd]
