"""Chat listing command."""

import asyncio
from typing import Annotated

import typer
from rich.table import Table

from arbor.cli.utils import console


def chats(
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum chats to show"),
    ] = 20,
) -> None:
    """List stored chats, most recently updated first."""
    asyncio.run(_list_chats(limit))


async def _list_chats(limit: int) -> None:
    from arbor.exceptions import HistoryStoreError
    from arbor.history import HistoryClient

    client = HistoryClient()
    try:
        all_chats = await client.list_chats()
    except HistoryStoreError as e:
        console.print(f"[red]Could not list chats: {e}[/red]")
        raise typer.Exit(1) from e
    finally:
        await client.close()

    if not all_chats:
        console.print("[yellow]No chats found. Start one with 'arbor chat'.[/yellow]")
        return

    table = Table(title=f"Chats ({min(limit, len(all_chats))}/{len(all_chats)})", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Updated", style="dim")

    for item in all_chats[:limit]:
        updated = item.updated_at.strftime("%Y-%m-%d %H:%M")
        table.add_row(item.id, item.title_from_content(), updated)

    console.print(table)
