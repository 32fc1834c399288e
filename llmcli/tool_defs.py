# llmcli/tool_defs.py
from llmcli.data_models import ToolDefinition

# Tools that change the user's system; they ask for confirmation before running.
RISKY_TOOLS = {"execute_command"}

DEFAULT_HISTORY_LIMIT = 10
MAX_HISTORY_LIMIT = 100

EXECUTE_COMMAND = ToolDefinition(
    name="execute_command",
    description="Executes a command on the command line and returns its output",
    parameters={
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The command to execute",
            }
        },
        "required": ["command"],
    },
)

COMMAND_HISTORY = ToolDefinition(
    name="command_history",
    description="Retrieves the user's recently executed terminal commands.",
    parameters={
        "type": "object",
        "properties": {
            "limit": {
                "type": "number",
                "description": (
                    f"Number of recent commands to retrieve from history "
                    f"(default: {DEFAULT_HISTORY_LIMIT}, max: {MAX_HISTORY_LIMIT})"
                ),
                "minimum": 1,
                "maximum": MAX_HISTORY_LIMIT,
            }
        },
        "required": [],
    },
)
