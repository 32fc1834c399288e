# llmcli/ui_display.py
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from llmcli.config_utils import Config


def display_error(console: Console, error: Exception):
    """Shows a run-level error in a red panel."""
    console.print(Panel(
        Text(str(error), style="red"),
        border_style="red",
        title=f"[bold red]{type(error).__name__}[/bold red]",
        title_align="left",
        expand=False,
    ))


def display_settings(console: Console, config: Config):
    """Debug view of the resolved settings for this run."""
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_row("[bold bright_blue]Provider:[/bold bright_blue]", config.provider.value)
    table.add_row("[bold bright_blue]Model:[/bold bright_blue]", config.get_model())
    table.add_row("[bold bright_blue]Max tokens:[/bold bright_blue]", str(config.get_max_tokens()))
    table.add_row("[bold bright_blue]Tools enabled:[/bold bright_blue]", str(config.enable_tools))
    table.add_row("[bold bright_blue]Max steps:[/bold bright_blue]", str(config.max_steps))
    table.add_row("[bold bright_blue]Theme:[/bold bright_blue]", config.theme or "[dim]default[/dim]")
    console.print(Panel(table, title="[dim]Settings[/dim]", border_style="blue", expand=False, title_align="left"))
