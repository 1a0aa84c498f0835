"""Registry cache - searchable catalog rebuilt wholesale on TTL expiry."""

import asyncio
import time
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from mcphub_core.logging.logger import HubLogger
from mcphub_core.types import CatalogSource, LogLevel, SortKey

from .sources import CatalogProvider, CuratedSource
from .types import RegistryServerEntry, SearchFilters, SearchResult

DEFAULT_TTL = 3600.0
DEFAULT_PAGE_SIZE = 20


def _matches(entry: RegistryServerEntry, filters: SearchFilters) -> bool:
    if filters.query:
        needle = filters.query.casefold()
        if not (
            needle in entry.name.casefold()
            or needle in entry.description.casefold()
            or any(needle in tag.casefold() for tag in entry.tags)
        ):
            return False
    if filters.source is not None and entry.source != filters.source:
        return False
    if filters.tags and not any(tag in entry.tags for tag in filters.tags):
        return False
    if filters.verified is not None and entry.verified != filters.verified:
        return False
    return True


def _updated_key(entry: RegistryServerEntry) -> tuple[bool, float]:
    # Newest first, undated entries last
    if entry.last_updated is None:
        return (True, 0.0)
    return (False, -entry.last_updated.timestamp())


def sort_entries(entries: list[RegistryServerEntry], sort_by: SortKey) -> list[RegistryServerEntry]:
    """Sort a copy of ``entries``. Sorts are stable."""
    if sort_by == SortKey.DOWNLOADS:
        return sorted(entries, key=lambda e: -(e.downloads or 0))
    if sort_by == SortKey.STARS:
        return sorted(entries, key=lambda e: -(e.stars or 0))
    if sort_by == SortKey.UPDATED:
        return sorted(entries, key=_updated_key)
    return sorted(entries, key=lambda e: (not e.verified, e.name.casefold()))


class RegistryCache:
    """Catalog aggregated from a curated list and remote sources.

    Reads rebuild the snapshot when it is missing or older than the TTL.
    A failing source is skipped; the rest of the snapshot is kept and the
    timestamp still advances.
    """

    def __init__(
        self,
        sources: Sequence[CatalogProvider] | None = None,
        ttl: float = DEFAULT_TTL,
        page_size: int = DEFAULT_PAGE_SIZE,
        logger: HubLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            sources: Providers in concatenation order (curated list only if None)
            ttl: Snapshot lifetime in seconds
            page_size: Default page length for searches
            logger: Optional logger
            clock: Monotonic time source
        """
        self._sources: list[CatalogProvider] = list(sources or [CuratedSource()])
        self.ttl = ttl
        self.page_size = page_size
        self._logger = logger
        self._clock = clock
        self._entries: list[RegistryServerEntry] | None = None
        self._built_at: float | None = None
        self._lock = asyncio.Lock()
        self.rebuild_count = 0

    def _log(self, level: LogLevel, message: str, **context: Any) -> None:
        """Log message if logger available."""
        if self._logger:
            self._logger._log(level, "registry", message, context)

    @property
    def is_fresh(self) -> bool:
        return (
            self._entries is not None
            and self._built_at is not None
            and self._clock() - self._built_at < self.ttl
        )

    async def search_registry(self, filters: SearchFilters | None = None) -> SearchResult:
        """Filter, then sort, then paginate the current snapshot."""
        filters = filters or SearchFilters()
        entries = await self._snapshot()

        matched = [entry for entry in entries if _matches(entry, filters)]
        ordered = sort_entries(matched, filters.sort_by)

        limit = filters.limit or self.page_size
        offset = filters.offset
        total = len(ordered)
        return SearchResult(
            servers=ordered[offset : offset + limit],
            total=total,
            has_more=offset + limit < total,
        )

    async def get_server_by_id(self, server_id: str) -> RegistryServerEntry | None:
        for entry in await self._snapshot():
            if entry.id == server_id:
                return entry
        return None

    async def get_categories(self) -> list[str]:
        """All distinct tags, sorted."""
        return sorted({tag for entry in await self._snapshot() for tag in entry.tags})

    async def get_popular_servers(
        self,
        limit: int = 10,
        source: CatalogSource | None = None,
    ) -> list[RegistryServerEntry]:
        """Most downloaded entries, optionally from one source."""
        result = await self.search_registry(
            SearchFilters(source=source, limit=limit, sort_by=SortKey.DOWNLOADS)
        )
        return result.servers

    async def refresh_cache(self) -> int:
        """Rebuild now regardless of age.

        Returns:
            Number of entries in the new snapshot
        """
        async with self._lock:
            return len(await self._rebuild())

    def clear_cache(self) -> None:
        self._entries = None
        self._built_at = None

    @property
    def built_at(self) -> float | None:
        return self._built_at

    async def _snapshot(self) -> list[RegistryServerEntry]:
        async with self._lock:
            if self.is_fresh and self._entries is not None:
                return self._entries
            return await self._rebuild()

    async def _rebuild(self) -> list[RegistryServerEntry]:
        collected: list[RegistryServerEntry] = []
        for source in self._sources:
            try:
                collected.extend(await source.fetch())
            except Exception as e:
                self._log(
                    LogLevel.WARN,
                    f"Catalog source '{source.name}' failed: {e}",
                    source=source.name,
                    error_type=type(e).__name__,
                )

        # Later entries for the same id win; first-seen order is kept
        deduplicated = list({entry.id: entry for entry in collected}.values())
        self._entries = deduplicated
        self._built_at = self._clock()
        self.rebuild_count += 1
        self._log(
            LogLevel.INFO,
            f"Catalog rebuilt with {len(deduplicated)} entries",
            entries=len(deduplicated),
            built_at=datetime.now().isoformat(timespec="seconds"),
        )
        return deduplicated
