"""Agent info command."""

import asyncio
import json

import typer
from rich.panel import Panel

from arbor.cli.utils import console


def agent_info() -> None:
    """Show metadata published by the agents backend."""
    asyncio.run(_agent_info())


async def _agent_info() -> None:
    from arbor.agents import AgentsClient
    from arbor.exceptions import ArborError

    client = AgentsClient()
    try:
        info = await client.get_agent_info()
    except ArborError as e:
        console.print(f"[red]Could not fetch agent info: {e}[/red]")
        raise typer.Exit(1) from e
    finally:
        await client.close()

    console.print(
        Panel(
            json.dumps(info, indent=2, ensure_ascii=False),
            title=f"Agents at {client.config.base_url}",
            border_style="green",
        )
    )
