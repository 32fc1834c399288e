# llmcli/tools/registry.py
import logging
from typing import Any, Dict, List, Optional, Protocol

from prompt_toolkit import PromptSession

from llmcli.data_models import ToolDefinition
from llmcli.errors import ToolNotFoundError
from llmcli.tools.command_history import CommandHistoryTool
from llmcli.tools.execute_command import ExecuteCommandTool

logger = logging.getLogger(__name__)


class Tool(Protocol):
    def definition(self) -> ToolDefinition: ...

    async def execute(self, arguments: Any) -> Any: ...


class ToolRegistry:
    """Name-keyed collection of the tools the model may call during a run."""

    def __init__(self):
        self.tools: Dict[str, Tool] = {}

    def register(self, tool: Tool):
        name = tool.definition().name
        if name in self.tools:
            logger.warning("Tool '%s' registered twice; keeping the latest", name)
        self.tools[name] = tool

    def get_tool_definitions(self) -> List[ToolDefinition]:
        return [tool.definition() for tool in self.tools.values()]

    def get_tool(self, name: str) -> Optional[Tool]:
        return self.tools.get(name)

    async def execute_tool(self, name: str, arguments: Any) -> Any:
        tool = self.get_tool(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return await tool.execute(arguments)


def build_tool_registry(prompt_session: PromptSession) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(ExecuteCommandTool(prompt_session))
    registry.register(CommandHistoryTool())
    return registry
