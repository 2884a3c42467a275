"""Agent transports: how a prompt reaches an agent."""

from multi_reviewer.agents.command import CommandTransport
from multi_reviewer.agents.http_client import HttpTransport
from multi_reviewer.agents.transport import AgentTransport, build_transport, build_transports

__all__ = [
    "AgentTransport",
    "CommandTransport",
    "HttpTransport",
    "build_transport",
    "build_transports",
]
