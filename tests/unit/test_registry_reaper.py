"""Unit tests for the connection registry and the idle reaper."""

import asyncio
import logging

import pytest

from pghandle.handle import ConnectionHandle
from pghandle.reaper import IdleReaper


def age(handle: ConnectionHandle, minutes: float) -> None:
    """Pretend the handle was opened ``minutes`` ago"""
    handle._opened_monotonic -= minutes * 60


class TestConnectionRegistry:
    """Test registry bookkeeping."""

    def test_register_assigns_unique_identifiers(self, registry):
        identifiers = {registry.register(object()) for _ in range(200)}
        assert len(identifiers) == 200
        assert len(registry) == 200
        assert all(len(identifier) == 6 for identifier in identifiers)

    def test_unregister(self, registry):
        item = object()
        identifier = registry.register(item)
        assert identifier in registry
        assert registry.get(identifier) is item

        assert registry.unregister(identifier) is True
        assert identifier not in registry
        assert registry.unregister(identifier) is False
        assert registry.unregister(None) is False

    def test_snapshot_is_a_copy(self, registry):
        identifier = registry.register(object())
        snapshot = registry.snapshot()
        registry.unregister(identifier)
        assert len(snapshot) == 1
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_async_iteration_tolerates_removal(self, registry):
        first = registry.register("a")
        registry.register("b")

        seen = []
        async for identifier, item in registry:
            seen.append(item)
            registry.unregister(first)

        assert seen == ["a", "b"]
        assert len(registry) == 1


class TestIdleReaper:
    """Test sweeping of idle handles."""

    @pytest.fixture
    def reaper(self, registry):
        return IdleReaper(registry, enabled=False, minutes=3)

    async def open_handle(self, fake_driver, registry, reaper):
        handle = ConnectionHandle(fake_driver, registry, reaper)
        await handle.open()
        return handle

    @pytest.mark.asyncio
    async def test_idle_handle_is_closed(self, fake_driver, registry, reaper, caplog):
        handle = await self.open_handle(fake_driver, registry, reaper)
        identifier = handle.identifier
        age(handle, 5)

        with caplog.at_level(logging.WARNING, logger="pghandle.reaper"):
            closed = await reaper.sweep()

        assert closed == [identifier]
        assert not handle.is_open
        assert identifier not in registry
        assert fake_driver.last_connection.release_count == 1
        assert f"[{identifier}] Db Opened" in caplog.text
        assert "1 Database Connections Open" in caplog.text

    @pytest.mark.asyncio
    async def test_recent_handle_is_kept(self, fake_driver, registry, reaper):
        handle = await self.open_handle(fake_driver, registry, reaper)
        age(handle, 1)

        assert await reaper.sweep() == []
        assert handle.is_open
        assert handle.identifier in registry

    @pytest.mark.asyncio
    async def test_explicitly_closed_handle_never_swept(self, fake_driver, registry, reaper):
        handle = await self.open_handle(fake_driver, registry, reaper)
        await handle.close()

        assert await reaper.sweep() == []
        assert fake_driver.last_connection.release_count == 1

    @pytest.mark.asyncio
    async def test_only_idle_handles_closed(self, fake_driver, registry, reaper):
        idle = await self.open_handle(fake_driver, registry, reaper)
        busy = await self.open_handle(fake_driver, registry, reaper)
        age(idle, 10)

        closed = await reaper.sweep()

        assert len(closed) == 1
        assert not idle.is_open
        assert busy.is_open
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_empty_registry_reports_all_closed(self, reaper, caplog):
        with caplog.at_level(logging.INFO, logger="pghandle.reaper"):
            assert await reaper.sweep() == []
        assert "All database connections are closed (0)." in caplog.text

    @pytest.mark.asyncio
    async def test_force_close_races_with_close(self, fake_driver, registry, reaper):
        handle = await self.open_handle(fake_driver, registry, reaper)
        age(handle, 10)

        await asyncio.gather(reaper.sweep(), handle.close())

        assert not handle.is_open
        assert fake_driver.last_connection.release_count == 1
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_timer_sweeps_periodically(self, fake_driver, registry):
        reaper = IdleReaper(registry, enabled=True, minutes=0, interval=0.01)
        try:
            handle = await self.open_handle(fake_driver, registry, reaper)
            assert reaper.running
            age(handle, 1)

            for _ in range(100):
                if not handle.is_open:
                    break
                await asyncio.sleep(0.01)

            assert not handle.is_open
        finally:
            await reaper.stop()
        assert not reaper.running

    @pytest.mark.asyncio
    async def test_reconfigure_replaces_timer(self, registry):
        reaper = IdleReaper(registry, enabled=True, minutes=3, interval=60)
        try:
            first = reaper._task
            assert reaper.running

            reaper.configure(True, 5)
            await asyncio.sleep(0.01)

            assert reaper._task is not first
            assert first.cancelled()
            assert reaper.running
            assert reaper.minutes == 5
        finally:
            await reaper.stop()

    @pytest.mark.asyncio
    async def test_disable_stops_timer(self, registry):
        reaper = IdleReaper(registry, enabled=True, interval=60)
        task = reaper._task

        reaper.configure(False)
        await asyncio.sleep(0.01)

        assert not reaper.running
        assert task.cancelled()

    def test_configure_without_loop_defers_start(self, registry):
        reaper = IdleReaper(registry, enabled=True, minutes=2)
        assert reaper.enabled
        assert not reaper.running
