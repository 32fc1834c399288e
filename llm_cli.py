#!/usr/bin/env python3

"""
llm-cli: ask an LLM a question from the terminal.

The reply is streamed as it is generated, with fenced code blocks syntax
highlighted on the fly. With tools enabled the model may look at your recent
shell history or run commands (each one confirmed first).
"""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional, TextIO

from rich.console import Console
from rich.logging import RichHandler

from llmcli.app_state import AppState
from llmcli.config_utils import Provider, apply_cli_overrides, get_api_key, load_configuration
from llmcli.conversation import ConversationManager
from llmcli.data_models import Message, UserMessage
from llmcli.errors import InvalidQueryError, LLMError
from llmcli.formatter import Formatter
from llmcli.providers.llm import create_llm_client
from llmcli.tools.registry import build_tool_registry
from llmcli.ui_display import display_error, display_settings

__version__ = "0.3.0"

logger = logging.getLogger("llm_cli")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llm-cli",
        description="Ask an LLM a question and stream the answer to the terminal.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('query', nargs='+', help='The question to ask. Multiple words are joined with spaces.')
    parser.add_argument(
        '-p', '--provider', choices=[p.value for p in Provider], default=None,
        help='LLM backend to use (overrides config.toml).'
    )
    parser.add_argument(
        '--enable-tools', action=argparse.BooleanOptionalAction, default=None,
        help='Allow the model to call local tools (execute_command, command_history).'
    )
    parser.add_argument('--max-steps', type=int, default=None, metavar='N', help='Maximum number of model turns.')
    parser.add_argument('--config', default='config.toml', metavar='PATH', help='Path to the TOML configuration file.')
    parser.add_argument('-d', '--debug', action='store_true', help='Print debug logs and settings to stderr.')
    return parser


def configure_logging(debug: bool):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)],
        force=True,
    )
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


async def run_query(query: str, app_state: AppState, sink: Optional[TextIO] = None) -> List[Message]:
    """Runs one conversation for `query` and returns the final transcript."""
    if not query.strip():
        raise InvalidQueryError("Query must not be empty")

    config = app_state.config
    sink = sink or sys.stdout
    logger.debug(
        "[SETTINGS] provider: %s, tool_enabled: %s, max_steps: %d",
        config.provider.value, config.enable_tools, config.max_steps,
    )
    if app_state.DEBUG_LLM_INTERACTIONS:
        display_settings(app_state.error_console, config)

    api_key = get_api_key(config.provider)
    formatter = Formatter(theme=config.theme)
    registry = build_tool_registry(app_state.prompt_session) if config.enable_tools else None
    client = create_llm_client(config, api_key)
    try:
        manager = ConversationManager(client, registry, formatter)
        messages = await manager.run([UserMessage(content=query)], config.max_steps, sink)
    finally:
        await client.aclose()

    sink.write("\n")
    sink.flush()
    return messages


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    configure_logging(args.debug)

    app_state = AppState()
    app_state.DEBUG_LLM_INTERACTIONS = args.debug
    try:
        config = load_configuration(app_state.error_console, args.config)
        app_state.config = apply_cli_overrides(
            config, provider=args.provider, enable_tools=args.enable_tools, max_steps=args.max_steps
        )
        asyncio.run(run_query(" ".join(args.query), app_state))
    except LLMError as e:
        display_error(app_state.error_console, e)
        return 1
    except KeyboardInterrupt:
        app_state.error_console.print("\n[bold yellow]Interrupted.[/bold yellow]")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
