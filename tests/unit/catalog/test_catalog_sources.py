"""Unit tests for catalog sources."""

import httpx
import pytest

from mcphub_core.catalog import CURATED_PACKAGES, CuratedSource, GitHubSearchSource, NpmSearchSource
from mcphub_core.types import CatalogSource

NPM_RESPONSE = {
    "objects": [
        {
            "package": {
                "name": "@modelcontextprotocol/server-memory",
                "version": "0.6.0",
                "description": "Knowledge graph memory",
                "keywords": ["mcp"],
                "date": "2024-11-20T10:00:00.000Z",
                "publisher": {"username": "jspahrsummers"},
                "links": {"npm": "https://www.npmjs.com/package/x"},
            },
            "downloads": {"monthly": 1200},
        },
        {
            "package": {
                "name": "weather-tools",
                "description": "Forecasts",
                "keywords": ["model-context-protocol", "weather"],
                "author": {"name": "Ann"},
                "links": {"repository": "https://github.com/ann/weather"},
            }
        },
        {"package": {"name": "left-pad", "keywords": ["string"]}},
        {"package": {}},
    ]
}

GITHUB_RESPONSE = {
    "items": [
        {
            "full_name": "octo/mcp-jira",
            "name": "mcp-jira",
            "description": None,
            "stargazers_count": 87,
            "pushed_at": "2024-10-01T00:00:00Z",
            "topics": ["mcp-server", "jira"],
            "owner": {"login": "octo"},
            "html_url": "https://github.com/octo/mcp-jira",
        },
        {"name": "no-full-name"},
    ]
}


def _client(payload, status_code=200, seen=None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestCuratedSource:
    """Tests for the curated list."""

    @pytest.mark.asyncio
    async def test_entries(self):
        entries = await CuratedSource().fetch()
        assert [e.id for e in entries] == list(CURATED_PACKAGES)
        first = entries[0]
        assert first.name == "Filesystem"
        assert first.verified
        assert "official" in first.tags


class TestNpmSearchSource:
    """Tests for npm registry search."""

    @pytest.mark.asyncio
    async def test_keeps_mcp_packages(self):
        seen: list[httpx.Request] = []
        source = NpmSearchSource(
            registry_url="https://registry.test/",
            query="mcp",
            size=5,
            client=_client(NPM_RESPONSE, seen=seen),
        )
        entries = await source.fetch()
        assert [e.id for e in entries] == ["@modelcontextprotocol/server-memory", "weather-tools"]

        request = seen[0]
        assert request.url.path == "/-/v1/search"
        assert request.url.params["text"] == "mcp"
        assert request.url.params["size"] == "5"

    @pytest.mark.asyncio
    async def test_entry_fields(self):
        memory, weather = await NpmSearchSource(client=_client(NPM_RESPONSE)).fetch()
        assert memory.verified
        assert memory.downloads == 1200
        assert memory.author == "jspahrsummers"
        assert memory.last_updated.year == 2024
        assert memory.install_command == "npx -y @modelcontextprotocol/server-memory"
        assert memory.source == CatalogSource.NPM

        assert not weather.verified
        assert weather.downloads is None
        assert weather.author == "Ann"
        assert weather.repository == "https://github.com/ann/weather"

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        with pytest.raises(httpx.HTTPStatusError):
            await NpmSearchSource(client=_client({}, status_code=503)).fetch()


class TestGitHubSearchSource:
    """Tests for GitHub repository search."""

    @pytest.mark.asyncio
    async def test_entries(self):
        seen: list[httpx.Request] = []
        source = GitHubSearchSource(token="ghp_test", client=_client(GITHUB_RESPONSE, seen=seen))
        entries = await source.fetch()
        assert len(entries) == 1
        entry = entries[0]
        assert entry.id == "github.com/octo/mcp-jira"
        assert entry.source == CatalogSource.GITHUB
        assert entry.stars == 87
        assert entry.description == ""
        assert entry.tags == ("mcp-server", "jira")
        assert seen[0].headers["Authorization"] == "Bearer ghp_test"
        assert seen[0].url.params["q"] == "topic:mcp-server"

    @pytest.mark.asyncio
    async def test_anonymous(self):
        seen: list[httpx.Request] = []
        await GitHubSearchSource(client=_client({"items": []}, seen=seen)).fetch()
        assert "Authorization" not in seen[0].headers
