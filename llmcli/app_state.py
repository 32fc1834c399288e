# llmcli/app_state.py
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.styles import Style as PromptStyle
from rich.console import Console

from llmcli.config_utils import Config, default_config


class AppState:
    def __init__(self, config: Optional[Config] = None):
        self.console = Console()
        # Errors, warnings and debug output go to stderr so stdout carries only the reply.
        self.error_console = Console(stderr=True)
        self.prompt_session = PromptSession(
            style=PromptStyle.from_dict({
                'prompt': '#0066ff bold',
            })
        )
        self.config: Config = config or default_config()
        self.DEBUG_LLM_INTERACTIONS: bool = False
