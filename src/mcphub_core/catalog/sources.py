"""Catalog sources: the curated list, npm search and GitHub search."""

from typing import Any, Protocol

import httpx

from mcphub_core.types import CatalogSource

from .types import RegistryServerEntry, parse_timestamp

OFFICIAL_PREFIX = "@modelcontextprotocol/server-"
OFFICIAL_REPOSITORY = "https://github.com/modelcontextprotocol/servers"

CURATED_PACKAGES: tuple[str, ...] = (
    "@modelcontextprotocol/server-filesystem",
    "@modelcontextprotocol/server-github",
    "@modelcontextprotocol/server-postgres",
    "@modelcontextprotocol/server-sqlite",
    "@modelcontextprotocol/server-slack",
    "@modelcontextprotocol/server-brave-search",
    "@modelcontextprotocol/server-puppeteer",
    "@modelcontextprotocol/server-memory",
    "@modelcontextprotocol/server-fetch",
    "@modelcontextprotocol/server-google-maps",
)

_MCP_MARKERS = ("mcp", "model-context-protocol")


class CatalogProvider(Protocol):
    """Anything that can contribute entries to a catalog rebuild."""

    name: str

    async def fetch(self) -> list[RegistryServerEntry]: ...


class CuratedSource:
    """The fixed list of official servers. Never fails."""

    name = "curated"

    async def fetch(self) -> list[RegistryServerEntry]:
        entries = []
        for package in CURATED_PACKAGES:
            short = package.removeprefix(OFFICIAL_PREFIX)
            entries.append(
                RegistryServerEntry(
                    id=package,
                    name=short[:1].upper() + short[1:],
                    description=f"Official MCP {short} server",
                    source=CatalogSource.NPM,
                    verified=True,
                    tags=("official", "mcp", short),
                    author="modelcontextprotocol",
                    repository=f"{OFFICIAL_REPOSITORY}/tree/main/src/{short}",
                    homepage=OFFICIAL_REPOSITORY,
                    install_command=f"npx -y {package}",
                )
            )
        return entries


class _HTTPSource:
    """Shared httpx plumbing for remote sources."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 10.0):
        self._client = client
        self.timeout = timeout

    async def _get_json(
        self,
        url: str,
        params: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> Any:
        if self._client is not None:
            response = await self._client.get(
                url, params=params, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
            return response.json()
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(url, params=params, headers=headers)
            response.raise_for_status()
            return response.json()


def _is_mcp_package(name: str, keywords: list[str]) -> bool:
    return "mcp" in name or any(
        marker in keyword for keyword in keywords for marker in _MCP_MARKERS
    )


class NpmSearchSource(_HTTPSource):
    """npm registry search, keeping only MCP-related packages."""

    name = "npm"

    def __init__(
        self,
        registry_url: str = "https://registry.npmjs.org",
        query: str = "mcp server",
        size: int = 50,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        super().__init__(client, timeout)
        self.registry_url = registry_url.rstrip("/")
        self.query = query
        self.size = size

    async def fetch(self) -> list[RegistryServerEntry]:
        data = await self._get_json(
            f"{self.registry_url}/-/v1/search",
            {"text": self.query, "size": self.size},
        )
        entries = []
        for obj in data.get("objects") or []:
            entry = self._to_entry(obj)
            if entry is not None:
                entries.append(entry)
        return entries

    def _to_entry(self, obj: dict[str, Any]) -> RegistryServerEntry | None:
        package = obj.get("package") or {}
        name = package.get("name")
        if not name:
            return None
        keywords = [str(k).lower() for k in package.get("keywords") or []]
        if not _is_mcp_package(name.lower(), keywords):
            return None

        links = package.get("links") or {}
        author = package.get("author") or {}
        publisher = package.get("publisher") or {}
        downloads = obj.get("downloads") or {}
        return RegistryServerEntry(
            id=name,
            name=name,
            description=package.get("description") or "",
            source=CatalogSource.NPM,
            version=package.get("version"),
            downloads=downloads.get("monthly") if isinstance(downloads, dict) else None,
            last_updated=parse_timestamp(package.get("date")),
            verified=name in CURATED_PACKAGES,
            tags=tuple(package.get("keywords") or ()),
            author=author.get("name") or publisher.get("username"),
            repository=links.get("repository"),
            homepage=links.get("homepage") or links.get("npm"),
            install_command=f"npx -y {name}",
        )


class GitHubSearchSource(_HTTPSource):
    """GitHub repository search by topic.

    Off unless ``registry.github_search_enabled`` is set. Unauthenticated
    calls are heavily rate limited by GitHub.
    """

    name = "github"

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        query: str = "topic:mcp-server",
        size: int = 30,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        super().__init__(client, timeout)
        self.api_url = api_url.rstrip("/")
        self.query = query
        self.size = size
        self._token = token

    async def fetch(self) -> list[RegistryServerEntry]:
        headers = {"Accept": "application/vnd.github+json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        data = await self._get_json(
            f"{self.api_url}/search/repositories",
            {"q": self.query, "sort": "stars", "per_page": self.size},
            headers=headers,
        )
        entries = []
        for repo in data.get("items") or []:
            full_name = repo.get("full_name")
            if not full_name:
                continue
            entries.append(
                RegistryServerEntry(
                    id=f"github.com/{full_name}",
                    name=repo.get("name") or full_name,
                    description=repo.get("description") or "",
                    source=CatalogSource.GITHUB,
                    stars=repo.get("stargazers_count"),
                    last_updated=parse_timestamp(repo.get("pushed_at") or repo.get("updated_at")),
                    tags=tuple(repo.get("topics") or ()),
                    author=(repo.get("owner") or {}).get("login"),
                    repository=repo.get("html_url"),
                    homepage=repo.get("homepage") or repo.get("html_url"),
                )
            )
        return entries
