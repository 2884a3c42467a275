"""Subprocess transport for CLI-based agents."""

import asyncio
import logging
import shlex

from multi_reviewer.errors import AgentTransportError

logger = logging.getLogger(__name__)

# Bytes of stderr kept in error messages
_STDERR_TAIL = 500


class CommandTransport:
    """Runs an agent CLI with the prompt on stdin and returns its stdout."""

    def __init__(self, name: str, command: list[str], timeout: float = 600) -> None:
        """Initialize the transport.

        Args:
            name: Agent name
            command: Executable and arguments
            timeout: Seconds before the process is killed
        """
        if not command:
            raise ValueError("command must not be empty")
        self.name = name
        self.command = list(command)
        self.timeout = timeout

    def describe(self) -> str:
        return shlex.join(self.command)

    async def run(self, prompt: str) -> str:
        """Execute the command once.

        Raises:
            AgentTransportError: On spawn failure, timeout or non-zero exit
        """
        logger.debug(f"Agent {self.name}: running {self.describe()}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AgentTransportError(
                self.name, f"starting {self.command[0]!r}: {e}"
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(prompt.encode("utf-8")), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise AgentTransportError(
                self.name, f"timed out after {self.timeout}s"
            ) from None
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        output = stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            tail = stderr.decode("utf-8", errors="replace").strip()[-_STDERR_TAIL:]
            raise AgentTransportError(
                self.name, f"exited with code {proc.returncode}: {tail}", output=output
            )
        return output
