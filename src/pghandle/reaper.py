"""
Idle connection reaper.

Every sweep interval the reaper force-closes registered handles that have been
open longer than the configured number of minutes and logs one consolidated
report of what it found.
"""

import asyncio
import logging
import threading
from typing import List, Optional

from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 10.0
SEPARATOR = "-" * 40


class IdleReaper:
    """
    Periodic sweep over a ConnectionRegistry.

    At most one timer task exists at a time: configure() cancels the running
    task before starting its replacement.
    """

    def __init__(self, registry: ConnectionRegistry, enabled: bool = False,
                 minutes: float = 3, interval: float = SWEEP_INTERVAL_SECONDS):
        self.registry = registry
        self.enabled = False
        self.minutes = minutes
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._lock = threading.Lock()
        self.configure(enabled, minutes)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def configure(self, enabled: bool, minutes: Optional[float] = None) -> None:
        """
        Apply new settings and restart the timer.

        When no event loop is running yet the timer starts on the next
        ensure_running() call, which ConnectionHandle.open() makes.
        """
        with self._lock:
            self._cancel()
            self.enabled = enabled
            if minutes is not None:
                self.minutes = minutes
            if enabled:
                self._start()
        logger.debug(f"Auto closer {'enabled' if enabled else 'disabled'} ({self.minutes} minutes)")

    def ensure_running(self) -> None:
        """Start the timer if enabled and not already running"""
        with self._lock:
            if self.enabled and not self.running:
                self._start()

    def _start(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = loop.create_task(self._run())

    def _cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def stop(self) -> None:
        """
        Cancel the timer and wait for it to finish.

        The reaper stays disabled afterwards; handles opened later do not
        restart it until configure() enables it again.
        """
        with self._lock:
            self.enabled = False
            task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Idle connection sweep failed")

    async def sweep(self) -> List[str]:
        """
        Close every handle open longer than the threshold.

        Returns:
            Identifiers of the handles that were closed
        """
        report = []
        closed = []
        counter = 0

        async for identifier, handle in self.registry:
            counter += 1
            if not handle.is_open:
                continue
            minutes = handle.open_minutes
            if minutes > self.minutes:
                report.append(f"\n[{identifier}] Db Opened : {minutes:.2f} minutes\n{handle.open_stack or ''}")
                await handle.close()
                closed.append(identifier)

        if report:
            logger.warning(
                f"{SEPARATOR}\n**** {counter} Database Connections Open ****"
                + "".join(report)
                + f"\n{SEPARATOR}"
            )
        elif counter == 0:
            logger.info("All database connections are closed (0).")
        else:
            logger.info(f"{counter} database connections open, none idle beyond {self.minutes} minutes.")

        return closed
