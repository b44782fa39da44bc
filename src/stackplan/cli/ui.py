"""Shared Rich console for the CLI."""

import questionary
import questionary.constants as questionary_constants
import questionary.styles as questionary_styles
from rich.console import Console

console = Console()

QUESTIONARY_STYLE = questionary.Style(
    [
        ("qmark", "fg:#5f819d"),
        ("question", "fg:#e0e0e0 bold"),
        ("answer", "fg:#FF9D00 bold"),
        ("pointer", "fg:#e0e0e0"),
        ("instruction", "fg:#e0e0e0"),
        ("text", "fg:#e0e0e0"),
    ]
)

questionary_constants.DEFAULT_STYLE = QUESTIONARY_STYLE
setattr(questionary_styles, "DEFAULT_STYLE", QUESTIONARY_STYLE)


def report(message: str) -> None:
    """Print a progress message from the synthesizer or a provider."""
    console.print(f"[cyan]{message}[/cyan]")
