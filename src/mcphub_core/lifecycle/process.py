"""Process Lifecycle Manager - supervises the OS processes behind stdio servers.

Process state is tracked independently of the protocol connection: a process
can be running while its connection is in error.
"""

import asyncio
import os
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from mcphub_core.config.servers import StdioServerConfig
from mcphub_core.errors import create_error
from mcphub_core.logging.logger import HubLogger
from mcphub_core.types import LogLevel, ProcessState

DEFAULT_GRACE_PERIOD = 10.0
DEFAULT_OUTPUT_LINES = 200
DEFAULT_MAX_RESTART_ATTEMPTS = 3

# Bound on waiting for exit after SIGKILL
KILL_TIMEOUT = 5.0
# Bound on draining pipes after exit (grandchildren may hold them open)
DRAIN_TIMEOUT = 1.0

_TERMINAL_STATES = (ProcessState.STOPPED, ProcessState.CRASHED)


@dataclass
class ServerProcess:
    """Recorded state of one supervised process.

    Attributes:
        server_id: Server the process backs
        state: starting, running, stopping, stopped or crashed
        pid: OS process id, once spawned
        started_at: Spawn time
        exit_code: Return code (negative for a signal exit)
        exited_at: Time the exit was observed
        restart_count: Restarts since the last explicit start_server spawn
        output: Bounded tail of stdout and stderr lines
    """

    server_id: str
    state: ProcessState = ProcessState.STARTING
    pid: int | None = None
    started_at: datetime | None = None
    exit_code: int | None = None
    exited_at: datetime | None = None
    restart_count: int = 0
    output: deque[str] = field(default_factory=lambda: deque(maxlen=DEFAULT_OUTPUT_LINES))

    @property
    def uptime_seconds(self) -> float | None:
        if self.started_at is None:
            return None
        end = self.exited_at or datetime.now(UTC)
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "server_id": self.server_id,
            "state": self.state.value,
            "pid": self.pid,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "exit_code": self.exit_code,
            "exited_at": self.exited_at.isoformat() if self.exited_at else None,
            "restart_count": self.restart_count,
            "uptime_seconds": self.uptime_seconds,
            "output": list(self.output),
        }


class ProcessManager:
    """Starts, stops and watches server processes.

    Owns every process handle. Operations for one server id are serialized;
    different ids proceed independently.
    """

    def __init__(
        self,
        logger: HubLogger | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        restart_delay: float = 0.0,
        output_lines: int = DEFAULT_OUTPUT_LINES,
        max_restart_attempts: int = DEFAULT_MAX_RESTART_ATTEMPTS,
    ):
        """Initialize the manager.

        Args:
            logger: Optional logger
            grace_period: Seconds between SIGTERM and SIGKILL
            restart_delay: Pause between stop and start on restart
            output_lines: Output lines kept per process
            max_restart_attempts: Restarts allowed before an explicit start
        """
        self._logger = logger
        self.grace_period = grace_period
        self.restart_delay = restart_delay
        self.output_lines = output_lines
        self.max_restart_attempts = max_restart_attempts
        self._processes: dict[str, ServerProcess] = {}
        self._handles: dict[str, asyncio.subprocess.Process] = {}
        self._watchers: dict[str, asyncio.Task[None]] = {}
        self._configs: dict[str, StdioServerConfig] = {}
        self._restart_attempts: dict[str, int] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def _log(self, level: LogLevel, message: str, **context: Any) -> None:
        """Log message if logger available."""
        if self._logger:
            self._logger._log(level, "process", message, context)

    @asynccontextmanager
    async def _locked(self, server_id: str) -> AsyncIterator[None]:
        """Hold the lock of ``server_id``; unused locks of unknown ids are dropped."""
        self._lock_users[server_id] = self._lock_users.get(server_id, 0) + 1
        try:
            lock = self._locks.get(server_id)
            if lock is None:
                lock = self._locks[server_id] = asyncio.Lock()
            async with lock:
                yield
        finally:
            self._lock_users[server_id] -= 1
            if not self._lock_users[server_id]:
                del self._lock_users[server_id]
                if server_id not in self._processes:
                    self._locks.pop(server_id, None)

    async def start_server(self, server_id: str, config: StdioServerConfig) -> ServerProcess:
        """Spawn the process for ``server_id``.

        Returns the existing record when the process is already running. A
        fresh spawn resets the restart budget of the id.

        Raises:
            HubError(CONFIG_INVALID): ``config`` is not a stdio definition
            HubError(PROCESS_FAILED): The OS refused to spawn the command
        """
        if not isinstance(config, StdioServerConfig):
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Server '{server_id}' does not use the stdio transport",
            )

        record = await self._start(server_id, config)
        if record.restart_count == 0:
            self._restart_attempts.pop(server_id, None)
        return record

    async def _start(self, server_id: str, config: StdioServerConfig) -> ServerProcess:
        async with self._locked(server_id):
            existing = self._processes.get(server_id)
            handle = self._handles.get(server_id)
            if (
                existing is not None
                and existing.state in (ProcessState.STARTING, ProcessState.RUNNING)
                and handle is not None
                and handle.returncode is None
            ):
                return existing

            # Stale record from an earlier run
            if existing is not None:
                self._forget(server_id)

            self._configs[server_id] = config
            return await self._spawn(server_id, config)

    async def stop_server(
        self,
        server_id: str,
        force: bool = False,
        grace_period: float | None = None,
    ) -> None:
        """Stop the process for ``server_id``; a no-op when none is running.

        Sends SIGTERM and waits up to the grace period, then SIGKILL. With
        ``force`` the kill is sent straight away. A requested stop always ends
        in ``stopped``.

        Raises:
            HubError(PROCESS_STOP_FAILED): The process could not be signalled
                or did not exit after SIGKILL
        """
        async with self._locked(server_id):
            record = self._processes.get(server_id)
            handle = self._handles.get(server_id)
            watcher = self._watchers.get(server_id)
            if record is None or handle is None or watcher is None:
                return
            if record.state in _TERMINAL_STATES or handle.returncode is not None:
                await asyncio.shield(watcher)
                return

            grace = self.grace_period if grace_period is None else grace_period
            record.state = ProcessState.STOPPING
            self._log(
                LogLevel.INFO,
                f"Stopping process for '{server_id}' (pid {record.pid})",
                server_id=server_id,
                pid=record.pid,
                force=force,
            )

            if not force:
                self._signal(handle, server_id, kill=False)
                try:
                    await asyncio.wait_for(asyncio.shield(watcher), timeout=grace)
                    return
                except TimeoutError:
                    self._log(
                        LogLevel.WARN,
                        f"Process for '{server_id}' ignored SIGTERM for {grace}s, killing",
                        server_id=server_id,
                        pid=record.pid,
                    )

            self._signal(handle, server_id, kill=True)
            try:
                await asyncio.wait_for(asyncio.shield(watcher), timeout=KILL_TIMEOUT)
            except TimeoutError as e:
                raise create_error(
                    "PROCESS_STOP_FAILED",
                    server_id=server_id,
                    detail=f"pid {record.pid} still alive {KILL_TIMEOUT}s after SIGKILL",
                ) from e

    async def restart_server(
        self,
        server_id: str,
        config: StdioServerConfig | None = None,
    ) -> ServerProcess:
        """Stop, then start again with ``config`` or the last known definition.

        At most ``max_restart_attempts`` restarts are allowed until the next
        explicit start_server spawn; failed restarts count too.

        Raises:
            HubError(CONFIG_INVALID): No definition was given or recorded
            HubError(RESTART_LIMIT_EXCEEDED): The restart budget is spent
        """
        config = config or self._configs.get(server_id)
        if config is None:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"No previous configuration for server '{server_id}'",
            )

        attempts = self._restart_attempts.get(server_id, 0) + 1
        if attempts > self.max_restart_attempts:
            self._log(
                LogLevel.WARN,
                f"Restart limit reached for '{server_id}'",
                server_id=server_id,
                max_attempts=self.max_restart_attempts,
            )
            raise create_error(
                "RESTART_LIMIT_EXCEEDED",
                server_id=server_id,
                max_attempts=self.max_restart_attempts,
            )
        self._restart_attempts[server_id] = attempts

        await self.stop_server(server_id)
        if self.restart_delay > 0:
            await asyncio.sleep(self.restart_delay)

        record = await self._start(server_id, config)
        record.restart_count = attempts
        return record

    def get_process_state(self, server_id: str) -> ServerProcess | None:
        return self._processes.get(server_id)

    def get_all_processes(self) -> list[ServerProcess]:
        return list(self._processes.values())

    async def stop_all(self, force: bool = False) -> None:
        """Stop every running process. Failures are logged."""
        server_ids = list(self._processes)
        results = await asyncio.gather(
            *(self.stop_server(sid, force=force) for sid in server_ids),
            return_exceptions=True,
        )
        for server_id, result in zip(server_ids, results, strict=True):
            if isinstance(result, Exception):
                self._log(
                    LogLevel.ERROR,
                    f"Failed to stop process for '{server_id}': {result}",
                    server_id=server_id,
                )

    async def _spawn(self, server_id: str, config: StdioServerConfig) -> ServerProcess:
        record = ServerProcess(server_id=server_id, output=deque(maxlen=self.output_lines))
        try:
            handle = await asyncio.create_subprocess_exec(
                config.command,
                *config.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, **config.env},
                cwd=config.cwd,
            )
        except OSError as e:
            self._log(
                LogLevel.ERROR,
                f"Failed to spawn '{config.command}' for '{server_id}': {e}",
                server_id=server_id,
                command=config.command,
            )
            raise create_error(
                "PROCESS_FAILED",
                server_id=server_id,
                detail=f"{config.command}: {e.strerror or e}",
            ) from e

        record.pid = handle.pid
        record.started_at = datetime.now(UTC)
        record.state = ProcessState.RUNNING
        self._processes[server_id] = record
        self._handles[server_id] = handle
        self._watchers[server_id] = asyncio.create_task(
            self._watch(server_id, handle, record),
            name=f"process-watch-{server_id}",
        )
        self._log(
            LogLevel.INFO,
            f"Started process for '{server_id}' (pid {handle.pid})",
            server_id=server_id,
            pid=handle.pid,
        )
        return record

    async def _watch(
        self,
        server_id: str,
        handle: asyncio.subprocess.Process,
        record: ServerProcess,
    ) -> None:
        """Wait for exit and record the terminal state."""
        readers = [
            asyncio.create_task(_drain(stream, record.output))
            for stream in (handle.stdout, handle.stderr)
            if stream is not None
        ]
        exit_code = await handle.wait()
        if handle.stdin is not None:
            handle.stdin.close()
        if readers:
            _, pending = await asyncio.wait(readers, timeout=DRAIN_TIMEOUT)
            for task in pending:
                task.cancel()

        record.exit_code = exit_code
        record.exited_at = datetime.now(UTC)
        if record.state == ProcessState.STOPPING or exit_code == 0:
            record.state = ProcessState.STOPPED
            self._log(
                LogLevel.INFO,
                f"Process for '{server_id}' stopped (exit code {exit_code})",
                server_id=server_id,
                exit_code=exit_code,
            )
        else:
            record.state = ProcessState.CRASHED
            self._log(
                LogLevel.ERROR,
                f"Process for '{server_id}' crashed (exit code {exit_code})",
                server_id=server_id,
                exit_code=exit_code,
            )

    def _signal(self, handle: asyncio.subprocess.Process, server_id: str, kill: bool) -> None:
        try:
            if kill:
                handle.kill()
            else:
                handle.terminate()
        except ProcessLookupError:
            # Exited between the state check and the signal
            return
        except OSError as e:
            raise create_error(
                "PROCESS_STOP_FAILED",
                server_id=server_id,
                detail=str(e),
            ) from e

    def _forget(self, server_id: str) -> None:
        self._processes.pop(server_id, None)
        self._handles.pop(server_id, None)
        watcher = self._watchers.pop(server_id, None)
        if watcher is not None and not watcher.done():
            watcher.cancel()


async def _drain(stream: asyncio.StreamReader, output: deque[str]) -> None:
    while True:
        line = await stream.readline()
        if not line:
            return
        output.append(line.decode("utf-8", errors="replace").rstrip("\r\n"))
