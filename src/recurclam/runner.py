"""Discovery-then-scan run orchestration."""

from __future__ import annotations

import asyncio
import functools
import os
import uuid
from dataclasses import dataclass
from pathlib import Path

from recurclam.backlog import ScanTask, build_backlog
from recurclam.config.models import AppSettings
from recurclam.fs.filtering import ExclusionSet
from recurclam.fs.walker import Frontier, Lister, SkipHandler, discover, list_subdirectories
from recurclam.runtime_logging import get_runtime_logger
from recurclam.workers.pool import EventHandler, PoolSummary, Spawner, WorkerPool
from recurclam.workers.process import ScannerCommand, reset_log_dir, spawn_worker
from recurclam.workers.shutdown import ShutdownController


@dataclass(slots=True)
class RunReport:
    frontiers: list[Frontier]
    backlog: tuple[ScanTask, ...]
    summary: PoolSummary


class ScanRun:
    def __init__(
        self,
        settings: AppSettings,
        *,
        on_event: EventHandler | None = None,
        on_skip: SkipHandler | None = None,
        spawner: Spawner | None = None,
        lister: Lister = list_subdirectories,
    ) -> None:
        self.settings = settings
        self.on_event = on_event
        self.on_skip = on_skip
        self.lister = lister
        self.start_path = os.path.abspath(settings.scan.start_path)
        self.exclusions = ExclusionSet(settings.scan.exclude_dirs)
        self.log_dir = Path(settings.logs.worker_log_dir).expanduser()
        self.command = ScannerCommand(
            command=settings.scanner.command,
            recursive_flag=settings.scanner.recursive_flag,
        )
        self.spawner: Spawner = spawner or functools.partial(
            spawn_worker,
            command=self.command,
            log_dir=self.log_dir,
        )
        self.run_id = uuid.uuid4().hex[:12]
        self.logger = get_runtime_logger()

    def plan(self) -> tuple[list[Frontier], tuple[ScanTask, ...]]:
        self.logger.info(
            "run.discover",
            start_path=self.start_path,
            depth=self.settings.scan.depth,
            excluded=list(self.exclusions),
        )
        frontiers = discover(
            self.start_path,
            self.settings.scan.depth,
            self.exclusions,
            lister=self.lister,
            on_skip=self.on_skip,
        )
        backlog = build_backlog(frontiers, self.exclusions, on_skip=self.on_skip)
        return frontiers, backlog

    async def execute(self) -> RunReport:
        with self.logger.scoped(run_id=self.run_id):
            frontiers, backlog = self.plan()
            reset_log_dir(self.log_dir)

            pool = WorkerPool(
                backlog,
                process_limit=self.settings.scan.process_limit,
                spawner=self.spawner,
                on_event=self.on_event,
            )
            controller = ShutdownController(pool)
            controller.install()
            try:
                summary = await pool.run()
            finally:
                controller.uninstall()

            self.logger.info("run.finished", interrupted=summary.interrupted, total=summary.total)
        return RunReport(frontiers=frontiers, backlog=backlog, summary=summary)

    def run(self) -> RunReport:
        return asyncio.run(self.execute())
