# llmcli/providers/llm.py
from typing import AsyncIterator, List, Optional, Protocol, Sequence

import httpx

from llmcli.config_utils import Config, Provider
from llmcli.data_models import Message, NormalizedChunk, ToolDefinition
from llmcli.providers.claude_client import ClaudeClient
from llmcli.providers.openai_client import OpenAIClient


class LLMClient(Protocol):
    """What the conversation loop needs from a provider backend."""

    async def query(
        self, messages: Sequence[Message], tools: Optional[Sequence[ToolDefinition]] = None
    ) -> List[Message]: ...

    def query_streaming(
        self, messages: Sequence[Message], tools: Optional[Sequence[ToolDefinition]] = None
    ) -> AsyncIterator[NormalizedChunk]: ...

    async def aclose(self) -> None: ...


def create_llm_client(config: Config, api_key: str, http_client: Optional[httpx.AsyncClient] = None) -> LLMClient:
    if config.provider == Provider.CLAUDE:
        return ClaudeClient(api_key, config, http_client=http_client)
    return OpenAIClient(api_key, config, http_client=http_client)
