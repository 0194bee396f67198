"""Scanner process spawning, per-worker log files and exit classification."""

from __future__ import annotations

import asyncio
import contextlib
import os
import shlex
import shutil
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from recurclam.backlog import ScanTask
from recurclam.runtime_logging import get_runtime_logger

TerminationKind = Literal["exit", "killed", "signal"]


class SpawnFailure(RuntimeError):
    def __init__(self, index: int, argv: list[str], reason: str) -> None:
        super().__init__(f"worker {index}: could not launch {shlex.join(argv)}: {reason}")
        self.index = index
        self.argv = argv
        self.reason = reason


@dataclass(frozen=True, slots=True)
class Termination:
    """How a worker process ended.

    ``killed`` is reserved for SIGKILL, which is what shutdown sends. Any
    other signal is ``signal``; a plain exit carries its status in ``code``.
    """

    kind: TerminationKind
    code: int | None = None
    signum: int | None = None

    @classmethod
    def from_returncode(cls, returncode: int) -> Termination:
        if returncode >= 0:
            return cls(kind="exit", code=returncode)
        signum = -returncode
        if signum == signal.SIGKILL:
            return cls(kind="killed", signum=signum)
        return cls(kind="signal", signum=signum)

    @property
    def killed(self) -> bool:
        return self.kind == "killed"

    def describe(self) -> str:
        if self.kind == "exit":
            return f"exit code {self.code}"
        assert self.signum is not None
        try:
            name = signal.Signals(self.signum).name
        except ValueError:
            name = str(self.signum)
        return f"signal {name}"


@dataclass(frozen=True, slots=True)
class ScannerCommand:
    command: str = "clamscan"
    recursive_flag: str = "--recursive=yes"

    def argv(self, task: ScanTask) -> list[str]:
        argv = [*shlex.split(self.command), task.path]
        if task.recursive:
            argv.append(self.recursive_flag)
        return argv


@dataclass(slots=True)
class Worker:
    index: int
    task: ScanTask
    argv: list[str]
    log_path: Path
    process: asyncio.subprocess.Process

    @property
    def pid(self) -> int:
        return self.process.pid

    async def wait(self) -> Termination:
        returncode = await self.process.wait()
        return Termination.from_returncode(returncode)

    def kill(self) -> None:
        # The worker leads its own session, so its pid is also the group id.
        with contextlib.suppress(ProcessLookupError):
            os.killpg(self.process.pid, signal.SIGKILL)


def worker_log_path(log_dir: Path, index: int) -> Path:
    return log_dir / f"worker{index}.log"


def reset_log_dir(log_dir: Path) -> Path:
    logger = get_runtime_logger()
    if log_dir.is_symlink() or (log_dir.exists() and not log_dir.is_dir()):
        logger.warning("logdir.replaced", path=str(log_dir))
        log_dir.unlink()
    elif log_dir.exists():
        logger.warning("logdir.removed", path=str(log_dir))
        shutil.rmtree(log_dir)
    log_dir.mkdir(parents=True)
    logger.debug("logdir.created", path=str(log_dir))
    return log_dir


async def spawn_worker(
    task: ScanTask,
    index: int,
    *,
    command: ScannerCommand,
    log_dir: Path,
) -> Worker:
    """Launch one detached scanner process for ``task``.

    stdout and stderr go to ``worker<index>.log`` below a two-line header;
    stdin is closed. Raises ``SpawnFailure`` if the process cannot start.
    """
    logger = get_runtime_logger()
    argv = command.argv(task)
    log_path = worker_log_path(log_dir, index)

    try:
        log_handle = log_path.open("wb")
    except OSError as exc:
        raise SpawnFailure(index, argv, f"cannot open {log_path}: {exc}") from exc

    with log_handle:
        log_handle.write(f"# recurclam worker {index}\n".encode("utf-8"))
        log_handle.write(f"# $ {shlex.join(argv)}\n\n".encode("utf-8"))
        log_handle.flush()
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=log_handle,
                stderr=log_handle,
                start_new_session=True,
            )
        except OSError as exc:
            log_handle.write(f"# spawn failed: {exc}\n".encode("utf-8"))
            logger.exception("worker.spawn.failed", exc, index=index, argv=argv)
            raise SpawnFailure(index, argv, str(exc)) from exc

    logger.info("worker.spawned", index=index, pid=process.pid, argv=argv, log_path=str(log_path))
    return Worker(index=index, task=task, argv=argv, log_path=log_path, process=process)
