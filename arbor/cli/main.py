"""CLI entry point.

Provides the main CLI application with commands for:
- chat: Stream a conversation with the agent
- chats: List stored conversations
- agent-info: Show agent metadata
"""

from typing import Annotated

import typer
from rich.panel import Panel

from arbor.cli.commands.chat import chat
from arbor.cli.commands.chats import chats
from arbor.cli.commands.info import agent_info
from arbor.cli.utils import console
from arbor.logging_config import configure_logging

app = typer.Typer(
    name="arbor",
    help="Streaming chat client for the agents backend",
    add_completion=False,
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output to stderr"),
    ] = False,
) -> None:
    """Configure logging before any command runs."""
    configure_logging("DEBUG" if verbose else None)


app.command()(chat)
app.command()(chats)
app.command(name="agent-info")(agent_info)


@app.command()
def version() -> None:
    """Show Arbor version information."""
    from arbor import __version__

    console.print(
        Panel(
            f"[bold]Arbor[/bold] v{__version__}\nStreaming agent chat client",
            title="Version",
            border_style="blue",
        )
    )


# Entry point for: python -m arbor.cli.main
if __name__ == "__main__":
    app()
