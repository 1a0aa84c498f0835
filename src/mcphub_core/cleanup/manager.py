"""Resource Cleanup - periodic reclamation of pooled clients and stale state."""

import asyncio
import contextlib
import logging
import signal
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from mcphub_core.auth.oauth import DEFAULT_MAX_AGE_SECONDS, OAuthStateStore
from mcphub_core.auth.rate_limiter import RateLimiter
from mcphub_core.mcp.pool import ConnectionPool

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 300.0
SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)

ShutdownHook = Callable[[], Awaitable[Any]]


@dataclass
class CleanupReport:
    """What a single cleanup pass reclaimed."""

    reason: str
    pooled_closed: int = 0
    rate_limit_keys_removed: int = 0
    oauth_states_pruned: int = 0
    ran_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def total(self) -> int:
        return self.pooled_closed + self.rate_limit_keys_removed + self.oauth_states_pruned

    def to_dict(self) -> dict[str, Any]:
        return {
            "reason": self.reason,
            "pooled_closed": self.pooled_closed,
            "rate_limit_keys_removed": self.rate_limit_keys_removed,
            "oauth_states_pruned": self.oauth_states_pruned,
            "ran_at": self.ran_at.isoformat(),
        }


class ResourceCleanup:
    """Runs cleanup passes on an interval, on demand and on shutdown signals.

    Every target is optional; a pass with nothing to clean reports zeros.
    """

    def __init__(
        self,
        pool: ConnectionPool | None = None,
        rate_limiter: RateLimiter | None = None,
        oauth_store: OAuthStateStore | None = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        oauth_state_max_age: float = DEFAULT_MAX_AGE_SECONDS,
    ) -> None:
        """Initialize cleanup.

        Args:
            pool: Pooled HTTP clients to reap
            rate_limiter: Limiter whose expired records are purged
            oauth_store: Pending authorization states to prune
            interval_seconds: Seconds between background passes
            oauth_state_max_age: Age after which a pending state is dropped
        """
        self._pool = pool
        self._rate_limiter = rate_limiter
        self._oauth_store = oauth_store
        self.interval_seconds = interval_seconds
        self.oauth_state_max_age = oauth_state_max_age
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._previous_handlers: dict[signal.Signals, Any] = {}
        self._signal_tasks: set[asyncio.Task[None]] = set()
        self.last_report: CleanupReport | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the interval cleanup task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._cleanup_loop())
        logger.info("Resource cleanup started (interval=%d seconds)", self.interval_seconds)

    async def stop(self) -> None:
        """Stop the interval cleanup task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Resource cleanup stopped")

    async def _cleanup_loop(self) -> None:
        """Periodic cleanup loop. The first pass runs immediately."""
        while self._running:
            try:
                await self.run_once("interval")
            except Exception as e:
                logger.error("Resource cleanup failed: %s", e)

            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break

    async def run_once(self, reason: str = "manual") -> CleanupReport:
        """Run one full pass.

        Args:
            reason: Trigger recorded in the report (interval, signal, shutdown)

        Returns:
            CleanupReport with the count reclaimed per target
        """
        report = CleanupReport(reason=reason)
        if self._pool is not None:
            report.pooled_closed = await self._pool.cleanup_idle()
        if self._rate_limiter is not None:
            report.rate_limit_keys_removed = self._rate_limiter.cleanup()
        if self._oauth_store is not None:
            report.oauth_states_pruned = self._oauth_store.prune(self.oauth_state_max_age)

        self.last_report = report
        if report.total:
            logger.info(
                "Cleanup (%s): closed %d pooled clients, purged %d rate limit keys, "
                "pruned %d OAuth states",
                reason,
                report.pooled_closed,
                report.rate_limit_keys_removed,
                report.oauth_states_pruned,
            )
        else:
            logger.debug("Cleanup (%s): nothing to reclaim", reason)
        return report

    def install_signal_handlers(
        self,
        on_shutdown: ShutdownHook | None = None,
        redeliver: bool = True,
    ) -> None:
        """Run a pass on SIGINT/SIGTERM, then call ``on_shutdown``.

        Afterwards the handlers that were in place before are restored and,
        with ``redeliver``, the signal is raised again so the process still
        terminates (or the host's own handler still runs).

        Must be called from within the running event loop.
        """
        loop = asyncio.get_running_loop()

        def _trigger(sig: signal.Signals) -> None:
            task = loop.create_task(self._handle_signal(sig, on_shutdown, redeliver))
            self._signal_tasks.add(task)
            task.add_done_callback(self._signal_tasks.discard)

        for sig in SHUTDOWN_SIGNALS:
            if sig in self._previous_handlers:
                continue
            self._previous_handlers[sig] = signal.getsignal(sig)
            try:
                loop.add_signal_handler(sig, _trigger, sig)
            except (NotImplementedError, RuntimeError):
                # Event loops without signal support (e.g. on Windows)
                signal.signal(
                    sig,
                    lambda signum, _frame: loop.call_soon_threadsafe(
                        _trigger, signal.Signals(signum)
                    ),
                )

    def remove_signal_handlers(self) -> None:
        """Put back the handlers found by install_signal_handlers."""
        try:
            loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        for sig, previous in self._previous_handlers.items():
            if loop is not None:
                with contextlib.suppress(NotImplementedError, RuntimeError):
                    loop.remove_signal_handler(sig)
            # None means a handler installed outside Python
            signal.signal(sig, signal.SIG_DFL if previous is None else previous)
        self._previous_handlers.clear()

    async def _handle_signal(
        self,
        sig: signal.Signals,
        on_shutdown: ShutdownHook | None,
        redeliver: bool,
    ) -> None:
        logger.info("Received %s, running cleanup", sig.name)
        try:
            try:
                await self.run_once(f"signal:{sig.name}")
            except Exception as e:
                logger.error("Cleanup on %s failed: %s", sig.name, e)
            if on_shutdown is not None:
                await on_shutdown()
        finally:
            if redeliver:
                self.remove_signal_handlers()
                logger.info("Re-raising %s for the previous handler", sig.name)
                signal.raise_signal(sig)
