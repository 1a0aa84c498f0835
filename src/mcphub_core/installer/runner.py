"""Bounded execution of the external commands an installation needs."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mcphub_core.errors import create_error

OutputCallback = Callable[[str], None]


@dataclass
class CommandResult:
    """Exit status and combined output of one command."""

    args: list[str]
    returncode: int
    output: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def tail(self, lines: int = 5) -> str:
        return "\n".join(self.output[-lines:])


class CommandRunner:
    """Runs a command with stdout and stderr merged, bounded by a timeout."""

    def __init__(self, timeout: float = 300.0):
        self.timeout = timeout

    async def run(
        self,
        args: list[str],
        cwd: str | Path | None = None,
        on_output: OutputCallback | None = None,
        timeout: float | None = None,
        **context: Any,
    ) -> CommandResult:
        """Run ``args`` to completion.

        Args:
            args: Executable and arguments (never passed through a shell)
            cwd: Working directory
            on_output: Called with each output line as it arrives
            timeout: Overrides the runner's default timeout
            **context: Extra error context (e.g. the install stage)

        Returns:
            CommandResult (a non-zero exit is not an error here)

        Raises:
            HubError(INSTALL_FAILED): The executable could not be started
            HubError(INSTALL_TIMEOUT): The command outlived the timeout
        """
        limit = self.timeout if timeout is None else timeout
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=str(cwd) if cwd is not None else None,
            )
        except OSError as e:
            raise create_error(
                "INSTALL_FAILED",
                detail=f"Could not run {args[0]}: {e.strerror or e}",
                **context,
            ) from e

        output: list[str] = []

        async def pump() -> None:
            assert process.stdout is not None
            async for raw in process.stdout:
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                output.append(line)
                if on_output:
                    on_output(line)

        try:
            await asyncio.wait_for(asyncio.gather(pump(), process.wait()), timeout=limit)
        except TimeoutError as e:
            process.kill()
            await process.wait()
            raise create_error(
                "INSTALL_TIMEOUT",
                timeout_seconds=limit,
                command=" ".join(args),
                **context,
            ) from e
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
            raise

        return CommandResult(args=list(args), returncode=process.returncode or 0, output=output)
