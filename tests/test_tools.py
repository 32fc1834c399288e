# tests/test_tools.py
import shlex
import sys
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from llmcli.data_models import ToolDefinition
from llmcli.errors import InvalidArgumentError, ToolExecutionError, ToolNotFoundError
from llmcli.tool_defs import RISKY_TOOLS
from llmcli.tools.command_history import (
    CommandHistoryTool, detect_history_file, parse_bash_line, parse_zsh_line, resolve_limit,
)
from llmcli.tools.execute_command import (
    CANCELLED_RESULT, ExecuteCommandTool, format_output, parse_command,
)
from llmcli.tools.registry import ToolRegistry, build_tool_registry


class EchoTool:
    def definition(self):
        return ToolDefinition(name="echo", description="Echo arguments back", parameters={"type": "object"})

    async def execute(self, arguments):
        return arguments


def confirming_session(answer):
    session = MagicMock()
    session.prompt_async = AsyncMock(return_value=answer)
    return session


# --- Tool definitions ---

def test_tool_definitions_are_well_formed():
    """Every advertised tool has an object schema whose required keys are declared."""
    definitions = build_tool_registry(MagicMock()).get_tool_definitions()
    assert {tool.name for tool in definitions} == {"execute_command", "command_history"}
    for tool in definitions:
        assert tool.description
        assert tool.parameters["type"] == "object"
        for required in tool.parameters.get("required", []):
            assert required in tool.parameters["properties"]


def test_execute_command_confirms_by_default():
    assert "execute_command" in RISKY_TOOLS
    assert ExecuteCommandTool(MagicMock()).require_confirmation is True


@pytest.mark.asyncio
async def test_tool_outside_risky_tools_runs_without_prompt():
    session = confirming_session("n")
    with patch("llmcli.tools.execute_command.RISKY_TOOLS", set()):
        tool = ExecuteCommandTool(session)
    with patch("llmcli.tools.execute_command.run_command", return_value="stdout: ok") as mock_run:
        assert await tool.execute({"command": "ls -la"}) == "stdout: ok"
    mock_run.assert_called_once_with(["ls", "-la"])
    session.prompt_async.assert_not_called()


# --- ToolRegistry ---

class TestToolRegistry:

    @pytest.mark.asyncio
    async def test_execute_registered_tool(self):
        registry = ToolRegistry()
        registry.register(EchoTool())
        assert await registry.execute_tool("echo", {"x": 1}) == {"x": 1}

    @pytest.mark.asyncio
    async def test_unknown_tool_raises(self):
        registry = ToolRegistry()
        with pytest.raises(ToolNotFoundError, match="Tool not found: missing"):
            await registry.execute_tool("missing", {})

    def test_definitions_and_lookup(self):
        registry = ToolRegistry()
        registry.register(EchoTool())
        assert [d.name for d in registry.get_tool_definitions()] == ["echo"]
        assert registry.get_tool("echo") is not None
        assert registry.get_tool("nope") is None

    def test_build_tool_registry_registers_both_tools(self):
        registry = build_tool_registry(MagicMock())
        assert sorted(d.name for d in registry.get_tool_definitions()) == ["command_history", "execute_command"]


# --- execute_command ---

class TestExecuteCommand:

    @pytest.mark.asyncio
    async def test_runs_command_after_confirmation(self):
        session = confirming_session("y")
        tool = ExecuteCommandTool(session)
        result = await tool.execute({"command": f"{shlex.quote(sys.executable)} -c \"print('hi')\""})
        assert result == "stdout: hi\n"
        prompt_text = session.prompt_async.call_args[0][0]
        assert "Do you want to execute the command:" in prompt_text

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer", ["", "n", "no", "nope"])
    async def test_declined_command_is_not_run(self, answer):
        tool = ExecuteCommandTool(confirming_session(answer))
        with patch("llmcli.tools.execute_command.run_command") as mock_run:
            result = await tool.execute({"command": "rm -rf /tmp/whatever"})
        assert result == CANCELLED_RESULT
        mock_run.assert_not_called()

    @pytest.mark.asyncio
    async def test_interrupted_prompt_counts_as_declined(self):
        session = MagicMock()
        session.prompt_async = AsyncMock(side_effect=KeyboardInterrupt)
        tool = ExecuteCommandTool(session)
        assert await tool.execute({"command": "ls"}) == CANCELLED_RESULT

    @pytest.mark.asyncio
    @pytest.mark.parametrize("arguments", [None, {}, {"command": 42}])
    async def test_command_must_be_a_string(self, arguments):
        tool = ExecuteCommandTool(confirming_session("y"))
        with pytest.raises(InvalidArgumentError, match="command must be a string"):
            await tool.execute(arguments)

    @pytest.mark.asyncio
    async def test_empty_command_rejected(self):
        session = confirming_session("y")
        tool = ExecuteCommandTool(session)
        with pytest.raises(InvalidArgumentError, match="command cannot be empty"):
            await tool.execute({"command": "   "})
        session.prompt_async.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_program_is_execution_error(self):
        tool = ExecuteCommandTool(confirming_session("yes"))
        with pytest.raises(ToolExecutionError):
            await tool.execute({"command": "definitely-not-a-real-program-xyz"})

    def test_parse_command_respects_quotes(self):
        assert parse_command("git commit -m 'two words'") == ["git", "commit", "-m", "two words"]

    def test_format_output(self):
        assert format_output("out", "") == "stdout: out"
        assert format_output("out", "err") == "stdout: out, stderr: err"
        assert format_output("", "err") == ", stderr: err"
        assert format_output("", "") == ""


# --- command_history ---

class TestCommandHistory:

    def test_parse_zsh_extended_line(self):
        assert parse_zsh_line(": 1700000000:0;git status\n") == "git status"
        assert parse_zsh_line("plain command") == "plain command"
        assert parse_zsh_line(": 1700000000:0;") is None
        assert parse_zsh_line("   ") is None

    def test_parse_bash_line(self):
        assert parse_bash_line("  ls -la \n") == "ls -la"
        assert parse_bash_line("\n") is None

    def test_zsh_history_preferred(self, tmp_path):
        (tmp_path / ".zsh_history").write_text(": 1:0;ls\n")
        (tmp_path / ".bash_history").write_text("pwd\n")
        path, parser = detect_history_file(tmp_path)
        assert path.name == ".zsh_history"
        assert parser is parse_zsh_line

    def test_no_history_file(self, tmp_path):
        with pytest.raises(ToolExecutionError, match="History file not found"):
            detect_history_file(tmp_path)

    @pytest.mark.parametrize("arguments, expected", [
        ({}, 10),
        (None, 10),
        ({"limit": 3}, 3),
        ({"limit": 3.0}, 3),
        ({"limit": 500}, 100),
        ({"limit": 0}, 10),
        ({"limit": "5"}, 10),
        ({"limit": True}, 10),
    ])
    def test_resolve_limit(self, arguments, expected):
        assert resolve_limit(arguments) == expected

    @pytest.mark.asyncio
    async def test_returns_most_recent_first_skipping_current(self, tmp_path):
        history = "".join(f": {i}:0;cmd{i}\n" for i in range(1, 6))
        (tmp_path / ".zsh_history").write_text(history)
        tool = CommandHistoryTool(home=tmp_path)
        # cmd5 is the invocation of this program and is skipped.
        assert await tool.execute({"limit": 3}) == "[cmd4,cmd3,cmd2]"

    @pytest.mark.asyncio
    async def test_bash_history(self, tmp_path):
        (tmp_path / ".bash_history").write_text("ls\n\ncd /tmp\nllm-cli hello\n")
        tool = CommandHistoryTool(home=tmp_path)
        assert await tool.execute({}) == "[cd /tmp,ls]"
