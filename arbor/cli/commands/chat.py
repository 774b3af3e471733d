"""Chat command."""

import asyncio
from typing import Annotated

import typer
from rich.panel import Panel
from rich.prompt import Prompt

from arbor.cli.utils import console
from arbor.models import AgentMode, Message, MessageKind
from arbor.streaming.events import MessageUpdate, UpdateAction

EXIT_COMMANDS = {"exit", "quit"}


def chat(
    message: Annotated[
        str | None,
        typer.Argument(help="Initial message (or leave empty for interactive mode)"),
    ] = None,
    thread: Annotated[
        str | None,
        typer.Option("--thread", "-t", help="Continue an existing chat by id"),
    ] = None,
    private: Annotated[
        bool,
        typer.Option("--private", help="Do not store anything in chat history"),
    ] = False,
    mode: Annotated[
        AgentMode | None,
        typer.Option("--mode", "-m", help="Response style tag for AI messages"),
    ] = None,
) -> None:
    """Chat with the agent, streaming its reply as it arrives.

    Examples:
        arbor chat "What changed this week?"
        arbor chat --thread <chat-id>
        arbor chat --private  # Interactive mode, nothing stored
    """
    asyncio.run(_chat(message, thread, private, mode))


class StreamRenderer:
    """Print MessageUpdates as they arrive.

    AI text is printed incrementally; everything else is printed once, when
    the message is created.
    """

    def __init__(self) -> None:
        self._printed: dict[str, int] = {}

    def __call__(self, update: MessageUpdate) -> None:
        message = update.message
        if message.kind == MessageKind.AI:
            self._render_ai(update.action, message)
        elif update.action == UpdateAction.CREATED:
            render_message(message)

    def _render_ai(self, action: UpdateAction, message: Message) -> None:
        if action == UpdateAction.ERRORED:
            console.print(f"\n[red]{message.content}[/red]")
            self._printed.pop(message.id, None)
            return
        if action == UpdateAction.CLOSED:
            if self._printed.pop(message.id, None) is not None:
                console.print()
            return
        if message.id not in self._printed:
            console.print("[bold green]Agent:[/bold green] ", end="")
            self._printed[message.id] = 0
        printed = self._printed[message.id]
        console.print(message.content[printed:], end="", markup=False, highlight=False)
        self._printed[message.id] = len(message.content)


def render_message(message: Message) -> None:
    """Print one complete message."""
    if message.kind == MessageKind.USER:
        console.print(f"[bold cyan]You:[/bold cyan] {message.content}")
    elif message.kind == MessageKind.AI:
        console.print("[bold green]Agent:[/bold green] ", end="")
        console.print(message.content, markup=False, highlight=False)
    elif message.kind == MessageKind.TOOL_CALL:
        args = ", ".join(f"{k}={v}" for k, v in (message.tool_args or {}).items())
        console.print(f"[dim]{message.content}({args})[/dim]")
    elif message.kind == MessageKind.TOOL_RESULT:
        console.print(f"[dim]{message.content}[/dim]")
    elif message.kind == MessageKind.ERROR:
        console.print(f"[red]{message.content}[/red]")
    else:
        console.print(f"[dim]{message.content}[/dim]")


async def _chat(
    initial_message: str | None,
    thread: str | None,
    private: bool,
    mode: AgentMode | None,
) -> None:
    """Run a chat session."""
    from arbor.agents import AgentsClient
    from arbor.controller import ChatController
    from arbor.exceptions import ArborError
    from arbor.history import HistoryClient

    agents = AgentsClient()
    history = HistoryClient()
    controller = ChatController(
        thread,
        agents=agents,
        history=history,
        private=private,
        mode=mode,
        listener=StreamRenderer(),
    )

    try:
        if thread:
            try:
                previous = await controller.load_messages()
            except ArborError as e:
                console.print(f"[red]Could not load chat {thread}: {e}[/red]")
                raise typer.Exit(1) from e
            console.print(f"[dim]Continuing chat: {thread}[/dim]\n")
            for msg in previous:
                render_message(msg)
            if previous:
                console.print()

        if initial_message:
            await _send(controller, initial_message)
            return

        console.print(
            Panel(
                "[bold blue]Agent Chat[/bold blue]\n\n"
                "Type [cyan]'exit'[/cyan] or [cyan]'quit'[/cyan] to end."
                + ("\n[yellow]Private: nothing will be stored.[/yellow]" if private else ""),
                title=f"Arbor ({controller.mode.display_name})",
                border_style="blue",
            )
        )
        while True:
            user_input = Prompt.ask("[bold cyan]You[/bold cyan]")
            if user_input.strip().lower() in EXIT_COMMANDS:
                break
            await _send(controller, user_input)
    finally:
        await controller.aclose()
        await agents.close()
        await history.close()
        if controller.chat_id and not private:
            console.print(f"\n[dim]Chat id: {controller.chat_id}[/dim]")


async def _send(controller, text: str) -> None:
    from arbor.exceptions import ArborError

    try:
        outcome = await controller.send_message(text)
    except ArborError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e
    if outcome is not None and not outcome.ok:
        console.print(f"[dim]Stream failed: {outcome.error}[/dim]")
