"""HTTP transport for agents behind an OpenAI-compatible chat API."""

import logging
from typing import TYPE_CHECKING, Any

import httpx

from multi_reviewer.errors import AgentTransportError

if TYPE_CHECKING:
    from multi_reviewer.config import AgentConfig

logger = logging.getLogger(__name__)


class HttpTransport:
    """Posts the prompt to ``/chat/completions`` and returns the reply text."""

    def __init__(
        self,
        name: str,
        base_url: str,
        model: str | None = None,
        api_key: str | None = None,
        timeout: float = 600,
        max_tokens: int = 4096,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            name: Agent name
            base_url: API root, e.g. ``http://localhost:8000/v1``
            model: Model identifier sent with each request
            api_key: Bearer token (optional)
            timeout: Request timeout in seconds
            max_tokens: Completion budget per request
            client: Pre-built client (tests)
        """
        self.name = name
        self.base_url = base_url
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=timeout
        )

    @classmethod
    def from_agent_config(cls, agent: "AgentConfig") -> "HttpTransport":
        return cls(
            name=agent.name,
            base_url=agent.base_url or "",
            model=agent.model,
            api_key=agent.api_key,
            timeout=agent.timeout_seconds,
            max_tokens=agent.max_tokens,
        )

    def describe(self) -> str:
        return f"POST {self.base_url}/chat/completions (model={self.model or 'default'})"

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def run(self, prompt: str) -> str:
        """Send one completion request.

        Raises:
            AgentTransportError: On HTTP errors, timeouts or an unexpected body
        """
        body: dict[str, Any] = {
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
        }
        if self.model:
            body["model"] = self.model

        logger.debug(f"Agent {self.name}: POST /chat/completions ({len(prompt)} chars)")
        try:
            response = await self._client.post("/chat/completions", json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise AgentTransportError(self.name, f"timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise AgentTransportError(
                self.name,
                f"HTTP {e.response.status_code}: {e.response.text[:200]}",
                output=e.response.text,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise AgentTransportError(self.name, f"request failed: {e}") from e

        return _extract_content(self.name, data)


def _extract_content(agent: str, data: Any) -> str:
    """Pull the assistant message text out of a chat completion body."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise AgentTransportError(agent, f"unexpected response shape: {e!r}") from e
    return content or ""
