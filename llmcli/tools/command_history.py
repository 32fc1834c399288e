# llmcli/tools/command_history.py
import asyncio
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

from llmcli.data_models import ToolDefinition
from llmcli.errors import ToolExecutionError
from llmcli.tool_defs import COMMAND_HISTORY, DEFAULT_HISTORY_LIMIT, MAX_HISTORY_LIMIT


def parse_zsh_line(line: str) -> Optional[str]:
    """Handles both plain lines and extended history (`: 1700000000:0;git status`)."""
    trimmed = line.strip()
    if not trimmed:
        return None
    if trimmed.startswith(": "):
        if ";" not in trimmed:
            return None
        command = trimmed.split(";", 1)[1].strip()
        return command or None
    return trimmed


def parse_bash_line(line: str) -> Optional[str]:
    trimmed = line.strip()
    return trimmed or None


def detect_history_file(home: Optional[Path] = None) -> Tuple[Path, Callable[[str], Optional[str]]]:
    """Zsh history wins over bash history when both exist."""
    home = home or Path.home()
    zsh_history = home / ".zsh_history"
    if zsh_history.exists():
        return zsh_history, parse_zsh_line
    bash_history = home / ".bash_history"
    if bash_history.exists():
        return bash_history, parse_bash_line
    raise ToolExecutionError("Failed to locate history file: History file not found")


def read_recent_commands(path: Path, parser: Callable[[str], Optional[str]], limit: int) -> List[str]:
    try:
        # zsh history may contain metafied bytes.
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            commands = [cmd for cmd in (parser(line) for line in f) if cmd]
    except OSError as e:
        raise ToolExecutionError(f"Failed to read history: {e}") from e

    commands.reverse()
    # The newest entry is the invocation that started this program.
    return commands[1:limit + 1]


def resolve_limit(arguments: Any) -> int:
    limit = arguments.get("limit") if isinstance(arguments, dict) else None
    if isinstance(limit, bool) or not isinstance(limit, (int, float)) or limit < 1:
        return DEFAULT_HISTORY_LIMIT
    return min(int(limit), MAX_HISTORY_LIMIT)


class CommandHistoryTool:
    def __init__(self, home: Optional[Path] = None):
        self.home = home

    def definition(self) -> ToolDefinition:
        return COMMAND_HISTORY

    async def execute(self, arguments: Any) -> Any:
        limit = resolve_limit(arguments)
        path, parser = detect_history_file(self.home)
        commands = await asyncio.to_thread(read_recent_commands, path, parser, limit)
        return f"[{','.join(commands)}]"
