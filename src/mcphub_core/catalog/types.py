"""Catalog records, search filters and search results."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from mcphub_core.errors import create_error
from mcphub_core.types import CatalogSource, SortKey


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@dataclass(frozen=True)
class RegistryServerEntry:
    """One installable server in the catalog. Immutable once fetched."""

    id: str
    name: str
    description: str
    source: CatalogSource
    version: str | None = None
    stars: int | None = None
    downloads: int | None = None
    last_updated: datetime | None = None
    verified: bool = False
    tags: tuple[str, ...] = ()
    author: str | None = None
    repository: str | None = None
    homepage: str | None = None
    install_command: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "source": self.source.value,
            "version": self.version,
            "stars": self.stars,
            "downloads": self.downloads,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "verified": self.verified,
            "tags": list(self.tags),
            "author": self.author,
            "repository": self.repository,
            "homepage": self.homepage,
            "install_command": self.install_command,
        }


_FILTER_ALIASES = {"sortBy": "sort_by", "sort": "sort_by"}


@dataclass
class SearchFilters:
    """Catalog query. Filters combine with AND; ``tags`` matches any tag."""

    query: str | None = None
    source: CatalogSource | None = None
    tags: list[str] = field(default_factory=list)
    verified: bool | None = None
    sort_by: SortKey = SortKey.RELEVANCE
    offset: int = 0
    limit: int | None = None  # cache page size when unset

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SearchFilters":
        """Build filters from a raw mapping.

        Raises:
            HubError(CONFIG_INVALID): Unknown source or sort key, bad paging or
                verified flag
        """
        values = {_FILTER_ALIASES.get(k, k): v for k, v in (data or {}).items()}
        try:
            source = CatalogSource(values["source"]) if values.get("source") else None
            sort_by = SortKey(values.get("sort_by") or SortKey.RELEVANCE)
        except ValueError as e:
            raise create_error("CONFIG_INVALID", detail=str(e)) from e

        offset = values.get("offset") or 0
        limit = values.get("limit")
        if not isinstance(offset, int) or offset < 0:
            raise create_error("CONFIG_INVALID", detail="offset must be a non-negative integer")
        if limit is not None and (not isinstance(limit, int) or limit <= 0):
            raise create_error("CONFIG_INVALID", detail="limit must be a positive integer")
        verified = values.get("verified")
        if verified is not None and not isinstance(verified, bool):
            raise create_error("CONFIG_INVALID", detail="verified must be true or false")

        tags = values.get("tags") or []
        if isinstance(tags, str):
            tags = [tags]
        return cls(
            query=values.get("query") or None,
            source=source,
            tags=list(tags),
            verified=verified,
            sort_by=sort_by,
            offset=offset,
            limit=limit,
        )


@dataclass
class SearchResult:
    """One page of catalog results."""

    servers: list[RegistryServerEntry]
    total: int
    has_more: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "servers": [entry.to_dict() for entry in self.servers],
            "total": self.total,
            "has_more": self.has_more,
        }
