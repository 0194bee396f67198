"""Signal-driven forced shutdown of the worker pool."""

from __future__ import annotations

import asyncio
import signal
from typing import Iterable

from recurclam.runtime_logging import get_runtime_logger
from recurclam.workers.pool import WorkerPool


class ShutdownController:
    def __init__(
        self,
        pool: WorkerPool,
        *,
        signals: Iterable[signal.Signals] = (signal.SIGINT,),
    ) -> None:
        self.pool = pool
        self.signals = tuple(signals)
        self.interrupts = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self.logger = get_runtime_logger()

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if self._loop is not None:
            return
        self._loop = loop or asyncio.get_running_loop()
        for signum in self.signals:
            self._loop.add_signal_handler(signum, self.interrupt, signum)
        self.logger.debug("shutdown.installed", signals=[sig.name for sig in self.signals])

    def uninstall(self) -> None:
        if self._loop is None:
            return
        for signum in self.signals:
            self._loop.remove_signal_handler(signum)
        self._loop = None
        self.logger.debug("shutdown.uninstalled")

    def interrupt(self, signum: int = signal.SIGINT) -> int:
        """Handle one interrupt; returns the number of kills issued."""
        self.interrupts += 1
        self.logger.warning(
            "shutdown.interrupt",
            signal=signal.Signals(signum).name,
            count=self.interrupts,
        )
        return self.pool.shutdown()
