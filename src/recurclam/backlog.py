"""Flatten discovery frontiers into the ordered scan backlog."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from recurclam.fs.filtering import ExclusionSet, as_exclusion_set
from recurclam.fs.walker import Frontier, SkipHandler
from recurclam.runtime_logging import get_runtime_logger


@dataclass(frozen=True, slots=True)
class ScanTask:
    path: str
    recursive: bool


def build_backlog(
    frontiers: Sequence[Frontier],
    excluded: ExclusionSet | Iterable[str] = (),
    *,
    on_skip: SkipHandler | None = None,
) -> tuple[ScanTask, ...]:
    """One task per non-excluded path; only the deepest frontier recurses.

    Shallower paths are covered by the deeper frontiers discovered beneath
    them, and the recursive scans of the last frontier cover everything
    below the discovery depth.
    """
    exclusions = as_exclusion_set(excluded)
    logger = get_runtime_logger()
    last = len(frontiers) - 1
    tasks: list[ScanTask] = []

    for depth, frontier in enumerate(frontiers):
        for path in frontier:
            if exclusions.excludes(path):
                logger.info("backlog.skip.excluded", path=path, depth=depth)
                if on_skip is not None:
                    on_skip(path, f"will not scan excluded directory '{path}'")
                continue
            tasks.append(ScanTask(path=path, recursive=depth == last))

    logger.info(
        "backlog.built",
        task_count=len(tasks),
        recursive_count=sum(1 for task in tasks if task.recursive),
    )
    return tuple(tasks)
