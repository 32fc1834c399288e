# llmcli/tools/execute_command.py
import asyncio
import shlex
import subprocess
from pathlib import Path
from typing import Any, List, Optional

from prompt_toolkit import PromptSession

from llmcli.data_models import ToolDefinition
from llmcli.errors import InvalidArgumentError, ToolExecutionError
from llmcli.tool_defs import EXECUTE_COMMAND, RISKY_TOOLS

CONFIRMATION_PROMPT = "Do you want to execute the command: '{}' ? [y/N] "
CANCELLED_RESULT = "stderr: Command execution cancelled by user"
COMMAND_TIMEOUT_SECONDS = 60


class ExecuteCommandTool:
    """Runs a command (no shell), asking the user first when the tool is listed in RISKY_TOOLS."""

    def __init__(self, prompt_session: PromptSession, require_confirmation: Optional[bool] = None):
        self.prompt_session = prompt_session
        if require_confirmation is None:
            require_confirmation = EXECUTE_COMMAND.name in RISKY_TOOLS
        self.require_confirmation = require_confirmation

    def definition(self) -> ToolDefinition:
        return EXECUTE_COMMAND

    async def execute(self, arguments: Any) -> Any:
        command = extract_command(arguments)
        argv = parse_command(command)

        if self.require_confirmation and not await self.confirm_execution(command):
            return CANCELLED_RESULT

        return await asyncio.to_thread(run_command, argv)

    async def confirm_execution(self, command: str) -> bool:
        try:
            answer = await self.prompt_session.prompt_async("\n" + CONFIRMATION_PROMPT.format(command), default="")
        except (EOFError, KeyboardInterrupt):
            return False
        return answer.strip().lower() in ("y", "yes")


def extract_command(arguments: Any) -> str:
    command = arguments.get("command") if isinstance(arguments, dict) else None
    if not isinstance(command, str):
        raise InvalidArgumentError("command must be a string")
    return command


def parse_command(command: str) -> List[str]:
    try:
        argv = shlex.split(command)
    except ValueError as e:
        raise InvalidArgumentError(f"could not parse command: {e}") from e
    if not argv:
        raise InvalidArgumentError("command cannot be empty")
    return argv


def run_command(argv: List[str]) -> str:
    try:
        process = subprocess.Popen(
            argv, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, cwd=Path.cwd()
        )
        stdout, stderr = process.communicate(timeout=COMMAND_TIMEOUT_SECONDS)
    except subprocess.TimeoutExpired as e:
        process.kill()
        process.communicate()
        raise ToolExecutionError(f"command timed out after {COMMAND_TIMEOUT_SECONDS} seconds") from e
    except OSError as e:
        raise ToolExecutionError(str(e)) from e
    return format_output(stdout, stderr)


def format_output(stdout: str, stderr: str) -> str:
    result = f"stdout: {stdout}" if stdout else ""
    if stderr:
        result += f", stderr: {stderr}"
    return result
