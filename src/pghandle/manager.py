"""
Connection manager

Owns the pieces shared between handles: configuration, driver, registry and
idle reaper. Handles are created here instead of reaching for global state.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Union

from .config import DatabaseConfig, load_config
from .driver import BaseDriver, SQLAlchemyDriver
from .handle import ConnectionHandle
from .reaper import SWEEP_INTERVAL_SECONDS, IdleReaper
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Factory and lifecycle owner for ConnectionHandles"""

    def __init__(self, config: Optional[DatabaseConfig] = None, driver: Optional[BaseDriver] = None,
                 sweep_interval: float = SWEEP_INTERVAL_SECONDS):
        """
        Args:
            config: Connection settings, defaults to DatabaseConfig()
            driver: Driver override; defaults to a SQLAlchemyDriver for config
            sweep_interval: Seconds between idle reaper sweeps
        """
        self.config = config or DatabaseConfig()
        self.driver = driver or SQLAlchemyDriver(self.config)
        self.registry = ConnectionRegistry()
        self.reaper = IdleReaper(
            self.registry,
            enabled=self.config.auto_closer_enabled,
            minutes=self.config.auto_closer_minutes,
            interval=sweep_interval,
        )
        # Drivers created for per-handle configurations, keyed by connection URL
        self._extra_drivers: Dict[str, BaseDriver] = {}

    @classmethod
    def from_yaml(cls, path: Union[str, Path], **kwargs) -> "ConnectionManager":
        """Create a manager from a YAML configuration file"""
        return cls(load_config(path), **kwargs)

    def create_handle(self, config: Optional[DatabaseConfig] = None) -> ConnectionHandle:
        """
        Create a closed handle.

        Args:
            config: Per-handle configuration. It gets its own driver and its
                auto-closer settings replace the reaper's current ones.
        """
        driver = self.driver
        if config is not None and config is not self.config:
            key = config.connection_string
            if key not in self._extra_drivers:
                self._extra_drivers[key] = SQLAlchemyDriver(config)
            driver = self._extra_drivers[key]
            self.configure_reaper(config.auto_closer_enabled, config.auto_closer_minutes)

        return ConnectionHandle(driver, self.registry, self.reaper)

    @asynccontextmanager
    async def connection(self, config: Optional[DatabaseConfig] = None) -> AsyncIterator[ConnectionHandle]:
        """Yield an open handle and close it afterwards"""
        handle = self.create_handle(config)
        await handle.open()
        try:
            yield handle
        finally:
            await handle.close()

    def configure_reaper(self, enabled: bool, minutes: Optional[float] = None) -> None:
        """Enable/disable the idle reaper or change its threshold"""
        self.reaper.configure(enabled, minutes)

    @property
    def open_handles(self) -> List[ConnectionHandle]:
        return [handle for _, handle in self.registry.snapshot()]

    async def shutdown(self) -> None:
        """Stop the reaper, close every open handle and dispose the drivers"""
        await self.reaper.stop()

        handles = self.open_handles
        for handle in handles:
            await handle.close()
        if handles:
            logger.info(f"Closed {len(handles)} open database connections on shutdown")

        await self.driver.dispose()
        for driver in self._extra_drivers.values():
            await driver.dispose()
        self._extra_drivers.clear()

    async def __aenter__(self) -> "ConnectionManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
