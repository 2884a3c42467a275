"""Agent transport interface and registry."""

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from multi_reviewer.agents.command import CommandTransport
from multi_reviewer.agents.http_client import HttpTransport
from multi_reviewer.errors import ConfigError

if TYPE_CHECKING:
    from multi_reviewer.config import AgentConfig, Config


@runtime_checkable
class AgentTransport(Protocol):
    """Sends a prompt to one agent and returns its raw text output.

    Implementations enforce their own timeouts and raise
    AgentTransportError on any invocation failure.
    """

    name: str

    async def run(self, prompt: str) -> str: ...

    def describe(self) -> str:
        """Short human-readable description for dry-run plans."""
        ...


def build_transport(agent: "AgentConfig") -> AgentTransport:
    """Create the transport for one configured agent.

    Raises:
        ConfigError: If the agent has neither a command nor a base URL
    """
    if agent.command:
        return CommandTransport(
            name=agent.name, command=agent.command, timeout=agent.timeout_seconds
        )
    if agent.base_url:
        return HttpTransport.from_agent_config(agent)
    raise ConfigError(f"agent {agent.name!r} needs either 'command' or 'base_url'")


def build_transports(config: "Config") -> dict[str, AgentTransport]:
    """Map every configured agent name to its transport."""
    return {agent.name: build_transport(agent) for agent in config.agents}
