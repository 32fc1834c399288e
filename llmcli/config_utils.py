# llmcli/config_utils.py
import copy
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import toml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from llmcli.errors import ConfigError

DEFAULT_SYSTEM_PROMPT = """You are a command-line assistant focused on helping users with CLI commands. Your primary goals are:
1. Help users find and construct the correct command for their needs (git, kubectl, docker, etc.)
2. When users encounter command errors, analyze the error and suggest improvements
3. Explain command syntax and options in a clear, concise way
4. Provide practical examples of command usage
5. Suggest best practices and safer alternatives when applicable

When providing code or commands:
- ALWAYS wrap code blocks with triple backticks and appropriate language tags
- For shell commands, use ```bash
- For source code, use the appropriate language tag (```python, ```javascript, ```c, etc.)
- Never provide code without language-tagged code blocks

Code formatting rules:
- Use actual newlines, not escaped \\n characters
- Include proper spacing around operators
- Use consistent indentation (4 spaces)
- Place opening braces on the same line as control statements
- Use proper spacing after commas in function arguments

Always prioritize accuracy and security in command suggestions. If a command could be potentially destructive, warn the user and explain the implications."""

# --- Ultimate Fallback Defaults ---
# Used as-is when config.toml is missing; a config.toml only needs the keys it changes.
ULTIMATE_DEFAULTS: Dict[str, Any] = {
    "provider": "claude",
    "enable_tools": False,
    "max_steps": 10,
    "system_prompt": DEFAULT_SYSTEM_PROMPT,
    "theme": None,
    "claude": {
        "default_model": "claude-3-5-sonnet-20241022",
        "max_tokens": 8192,
    },
    "openai": {
        "default_model": "gpt-4o",
        "max_tokens": 16383,
    },
}

DEFAULT_CONFIG_PATH = "config.toml"

# Top-level settings that can also come from the environment (after .env is loaded).
SUPPORTED_SET_PARAMS = {
    "provider": {
        "env_var": "LLM_CLI_PROVIDER",
        "description": "LLM backend used for the query.",
        "allowed_values": ["claude", "openai"],
    },
    "enable_tools": {
        "env_var": "LLM_CLI_ENABLE_TOOLS",
        "description": "Let the model call local tools (execute_command, command_history).",
        "allowed_values": ["true", "false"],
    },
    "max_steps": {
        "env_var": "LLM_CLI_MAX_STEPS",
        "description": "Maximum number of model turns in one run.",
    },
    "theme": {
        "env_var": "LLM_CLI_THEME",
        "description": "Pygments style used to highlight code blocks.",
    },
}

API_KEY_ENV_VARS = {
    "claude": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}


class Provider(str, Enum):
    CLAUDE = "claude"
    OPENAI = "openai"


class ProviderConfig(BaseModel):
    default_model: str
    max_tokens: int = Field(gt=0)
    model_config = ConfigDict(extra='ignore', frozen=True)


class Config(BaseModel):
    provider: Provider
    system_prompt: Optional[str] = None
    enable_tools: bool = False
    max_steps: int = Field(ge=0)
    theme: Optional[str] = None
    claude: ProviderConfig
    openai: ProviderConfig
    model_config = ConfigDict(extra='ignore', frozen=True)

    @property
    def provider_config(self) -> ProviderConfig:
        return self.claude if self.provider == Provider.CLAUDE else self.openai

    def get_model(self) -> str:
        return self.provider_config.default_model

    def get_max_tokens(self) -> int:
        return self.provider_config.max_tokens


def default_config() -> Config:
    return Config.model_validate(ULTIMATE_DEFAULTS)


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _env_overrides() -> Dict[str, Any]:
    overrides = {}
    for param_name, p_config in SUPPORTED_SET_PARAMS.items():
        env_val = os.getenv(p_config["env_var"])
        if env_val is None or env_val == "":
            continue
        allowed_values = p_config.get("allowed_values")
        if allowed_values and env_val.lower() not in allowed_values:
            raise ConfigError(
                f"Invalid value '{env_val}' for {p_config['env_var']}. Allowed values: {', '.join(allowed_values)}"
            )
        if param_name == "enable_tools":
            overrides[param_name] = env_val.lower() == "true"
        elif param_name == "provider":
            overrides[param_name] = env_val.lower()
        else:
            overrides[param_name] = env_val  # pydantic coerces "5" -> 5 for max_steps
    return overrides


def load_configuration(console_obj=None, config_path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> Config:
    """
    Loads the .env file into the environment and builds the run configuration.

    Precedence (highest first):
    1. Environment variables listed in SUPPORTED_SET_PARAMS
    2. Values from config.toml
    3. ULTIMATE_DEFAULTS
    CLI flags are applied on top afterwards with apply_cli_overrides().
    """
    load_dotenv()

    settings = copy.deepcopy(ULTIMATE_DEFAULTS)
    toml_config_path = Path(config_path)
    if toml_config_path.exists():
        try:
            loaded_toml = toml.load(toml_config_path)
        except (OSError, toml.TomlDecodeError) as e:
            raise ConfigError(f"Failed to parse config file {toml_config_path}: {e}") from e
        settings = _deep_merge(settings, loaded_toml)
    elif console_obj and Path(config_path) != Path(DEFAULT_CONFIG_PATH):
        # A missing default config.toml is the normal case.
        console_obj.print(f"[yellow]Warning: Config file '{config_path}' not found. Using internal defaults.[/yellow]")

    settings.update(_env_overrides())

    try:
        return Config.model_validate(settings)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def apply_cli_overrides(
    config: Config,
    provider: Optional[str] = None,
    enable_tools: Optional[bool] = None,
    max_steps: Optional[int] = None,
) -> Config:
    """Returns a copy of `config` with any non-None command-line values applied."""
    updates: Dict[str, Any] = {}
    if provider is not None:
        updates["provider"] = Provider(provider)
    if enable_tools is not None:
        updates["enable_tools"] = enable_tools
    if max_steps is not None:
        if max_steps < 0:
            raise ConfigError("max_steps must be zero or a positive integer.")
        updates["max_steps"] = max_steps
    return config.model_copy(update=updates)


def get_api_key(provider: Union[Provider, str]) -> str:
    env_var = API_KEY_ENV_VARS[Provider(provider).value]
    api_key = os.getenv(env_var)
    if not api_key:
        raise ConfigError(f"{env_var} is not set. Add it to your environment or a .env file.")
    return api_key
