"""Unit tests for the pooled httpx clients."""

import asyncio

import pytest
from mocks import FakeClock

from mcphub_core.errors import HubError
from mcphub_core.mcp.pool import ConnectionPool

URL = "http://mcp.test/mcp"


class TestAcquireRelease:
    """Tests for acquire and release."""

    @pytest.mark.asyncio
    async def test_released_client_is_reused(self):
        """Test a released client serves the next caller."""
        pool = ConnectionPool()
        first = await pool.acquire("remote", URL)
        await pool.release(first)
        second = await pool.acquire("remote", URL)
        assert second is first
        assert second.use_count == 2
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_busy_client_is_not_shared(self):
        pool = ConnectionPool()
        first = await pool.acquire("remote", URL)
        second = await pool.acquire("remote", URL)
        assert first is not second
        assert pool.get_stats()["active_connections"] == 2
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_acquire_times_out_when_full(self):
        """Test callers past the limit get CONNECTION_TIMEOUT."""
        pool = ConnectionPool(max_connections=1, acquire_timeout=0.05)
        await pool.acquire("remote", URL)
        with pytest.raises(HubError) as exc_info:
            await pool.acquire("remote", URL)
        assert exc_info.value.code == "CONNECTION_TIMEOUT"
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_waiter_wakes_on_release(self):
        """Test a waiting caller receives the released client."""
        pool = ConnectionPool(max_connections=1, acquire_timeout=5)
        held = await pool.acquire("remote", URL)
        waiter = asyncio.create_task(pool.acquire("remote", URL))
        await asyncio.sleep(0.01)
        assert not waiter.done()

        await pool.release(held)
        assert await asyncio.wait_for(waiter, timeout=1) is held
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_idle_client_for_other_url_is_evicted(self):
        """Test a full pool frees an idle slot bound to another URL."""
        pool = ConnectionPool(max_connections=1)
        old = await pool.acquire("remote", URL)
        await pool.release(old)

        new = await pool.acquire("remote", "http://mcp.test/other")
        assert new is not old
        assert old.client.is_closed
        assert pool.get_stats()["by_server"]["remote"]["total"] == 1
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_connection_context_releases(self):
        pool = ConnectionPool()
        async with pool.connection("remote", URL) as conn:
            assert conn.in_use
        assert not conn.in_use
        await pool.close_all()


class TestCleanup:
    """Tests for idle and age based reclamation."""

    @pytest.mark.asyncio
    async def test_idle_clients_closed(self):
        clock = FakeClock()
        pool = ConnectionPool(max_idle_time=60, clock=clock)
        conn = await pool.acquire("remote", URL)
        await pool.release(conn)

        clock.advance(30)
        assert await pool.cleanup_idle() == 0
        clock.advance(31)
        assert await pool.cleanup_idle() == 1
        assert conn.client.is_closed
        assert pool.get_stats()["total_connections"] == 0

    @pytest.mark.asyncio
    async def test_busy_clients_kept(self):
        """Test clients in use survive even past the age limit."""
        clock = FakeClock()
        pool = ConnectionPool(max_idle_time=1, max_connection_age=1, clock=clock)
        await pool.acquire("remote", URL)
        clock.advance(10)
        assert await pool.cleanup_idle() == 0
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_nothing_to_clean(self):
        assert await ConnectionPool().cleanup_idle() == 0

    @pytest.mark.asyncio
    async def test_clear_server(self):
        pool = ConnectionPool()
        await pool.acquire("a", URL)
        await pool.acquire("b", URL)
        assert await pool.clear_server("a") == 1
        assert list(pool.get_stats()["by_server"]) == ["b"]
        await pool.close_all()
