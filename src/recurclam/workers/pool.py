"""Bounded-concurrency scheduler for scanner workers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol, Sequence

from recurclam.backlog import ScanTask
from recurclam.runtime_logging import get_runtime_logger
from recurclam.workers.process import SpawnFailure, Termination


class WorkerHandle(Protocol):
    index: int
    task: ScanTask

    async def wait(self) -> Termination: ...

    def kill(self) -> None: ...


Spawner = Callable[[ScanTask, int], Awaitable[WorkerHandle]]
EventHandler = Callable[["PoolEvent"], None]


@dataclass(frozen=True, slots=True)
class CompletionEvent:
    index: int
    termination: Termination


@dataclass(slots=True)
class PoolEvent:
    type: str
    payload: dict[str, Any]


@dataclass(slots=True)
class PoolSummary:
    total: int
    spawned: int = 0
    completed: int = 0
    killed: int = 0
    spawn_failures: int = 0
    peak_active: int = 0
    interrupted: bool = False
    unclaimed: int = 0
    failed_indexes: list[int] = field(default_factory=list)


class WorkerPool:
    """Keeps at most ``process_limit`` workers running until the backlog is used up.

    Only the event loop thread touches the cursor and the active set. Exit
    notifications are funnelled through one queue of ``CompletionEvent`` and
    handled by ``run``: the finished worker is removed and, unless it was
    killed, replaced by the next task in the backlog.
    """

    def __init__(
        self,
        backlog: Sequence[ScanTask],
        *,
        process_limit: int,
        spawner: Spawner,
        on_event: EventHandler | None = None,
    ) -> None:
        if process_limit < 1:
            raise ValueError(f"process_limit must be >= 1, got {process_limit}")
        self.backlog: tuple[ScanTask, ...] = tuple(backlog)
        self.process_limit = process_limit
        self.spawner = spawner
        self.on_event = on_event
        self.cursor = 0
        self.shutdown_requested = False
        self.summary = PoolSummary(total=len(self.backlog))
        self._active: dict[int, WorkerHandle] = {}
        self._events: asyncio.Queue[CompletionEvent] = asyncio.Queue()
        self._watchers: set[asyncio.Task[None]] = set()
        self.logger = get_runtime_logger()

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def active_indexes(self) -> list[int]:
        return sorted(self._active)

    @property
    def exhausted(self) -> bool:
        return self.cursor >= len(self.backlog)

    def claim_next(self) -> tuple[int, ScanTask] | None:
        if self.shutdown_requested or self.exhausted:
            return None
        if len(self._active) >= self.process_limit:
            return None
        index = self.cursor
        self.cursor += 1
        return index, self.backlog[index]

    async def try_spawn_one(self) -> WorkerHandle | None:
        while (claimed := self.claim_next()) is not None:
            index, task = claimed
            try:
                worker = await self.spawner(task, index)
            except SpawnFailure as exc:
                self.summary.spawn_failures += 1
                self.summary.failed_indexes.append(index)
                self.logger.exception("pool.worker.spawn_failed", exc, index=index, path=task.path)
                self._emit("worker.spawn_failed", index=index, path=task.path, error=str(exc))
                continue

            self._admit(worker)
            if self.shutdown_requested:
                # Shutdown arrived while this worker was being launched.
                worker.kill()
            return worker
        return None

    async def start(self) -> None:
        self.logger.info("pool.start", process_limit=self.process_limit, total=len(self.backlog))
        for _ in range(self.process_limit):
            await self.try_spawn_one()

    def record_completion(self, event: CompletionEvent) -> bool:
        """Drop the finished worker; return True when its slot should be refilled."""
        worker = self._active.pop(event.index, None)
        if worker is None:
            self.logger.warning("pool.worker.unknown", index=event.index)
            return False

        termination = event.termination
        if termination.killed:
            self.summary.killed += 1
            self.logger.warning("pool.worker.killed", index=event.index, path=worker.task.path)
            self._emit("worker.killed", index=event.index, path=worker.task.path)
            return False

        self.summary.completed += 1
        self.logger.info(
            "pool.worker.finished",
            index=event.index,
            path=worker.task.path,
            termination=termination.describe(),
        )
        self._emit(
            "worker.finished",
            index=event.index,
            path=worker.task.path,
            termination=termination.describe(),
        )
        return True

    async def run(self) -> PoolSummary:
        await self.start()
        while self._active:
            event = await self._events.get()
            if self.record_completion(event):
                await self.try_spawn_one()

        self.summary.interrupted = self.shutdown_requested
        self.summary.unclaimed = len(self.backlog) - self.cursor
        self.logger.info(
            "pool.finished",
            spawned=self.summary.spawned,
            completed=self.summary.completed,
            killed=self.summary.killed,
            spawn_failures=self.summary.spawn_failures,
            unclaimed=self.summary.unclaimed,
        )
        return self.summary

    def shutdown(self) -> int:
        """Stop admitting work and SIGKILL every active worker."""
        first = not self.shutdown_requested
        self.shutdown_requested = True
        workers = list(self._active.values())
        self.logger.warning("pool.shutdown", first_request=first, active=len(workers))
        self._emit("pool.shutdown", active=len(workers), first_request=first)
        for worker in workers:
            worker.kill()
        return len(workers)

    def _admit(self, worker: WorkerHandle) -> None:
        self._active[worker.index] = worker
        self.summary.spawned += 1
        self.summary.peak_active = max(self.summary.peak_active, len(self._active))
        self.logger.debug("pool.worker.admitted", index=worker.index, active=len(self._active))
        self._emit("worker.spawned", index=worker.index, path=worker.task.path, recursive=worker.task.recursive)

        watcher = asyncio.create_task(self._watch(worker))
        self._watchers.add(watcher)
        watcher.add_done_callback(self._watchers.discard)

    async def _watch(self, worker: WorkerHandle) -> None:
        termination = await worker.wait()
        self._events.put_nowait(CompletionEvent(index=worker.index, termination=termination))

    def _emit(self, event_type: str, **payload: Any) -> None:
        if self.on_event is not None:
            self.on_event(PoolEvent(type=event_type, payload=payload))
