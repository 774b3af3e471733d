"""Agents backend access."""

from arbor.agents.client import AgentsClient, AgentsClientConfig, AgentStreamRequest

__all__ = ["AgentStreamRequest", "AgentsClient", "AgentsClientConfig"]
