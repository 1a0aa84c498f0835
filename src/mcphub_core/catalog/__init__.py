"""Server catalog - curated and searched entries behind a TTL cache."""

from .cache import RegistryCache, sort_entries
from .sources import (
    CURATED_PACKAGES,
    CatalogProvider,
    CuratedSource,
    GitHubSearchSource,
    NpmSearchSource,
)
from .types import RegistryServerEntry, SearchFilters, SearchResult, parse_timestamp

__all__ = [
    "RegistryCache",
    "RegistryServerEntry",
    "SearchFilters",
    "SearchResult",
    "CatalogProvider",
    "CuratedSource",
    "NpmSearchSource",
    "GitHubSearchSource",
    "CURATED_PACKAGES",
    "sort_entries",
    "parse_timestamp",
]
