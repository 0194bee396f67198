"""Depth-limited breadth-first directory discovery."""

from __future__ import annotations

import os
from typing import Callable, Iterable

from recurclam.fs.filtering import ExclusionSet, as_exclusion_set
from recurclam.runtime_logging import get_runtime_logger

Frontier = tuple[str, ...]
Lister = Callable[[str], list[str]]
SkipHandler = Callable[[str, str], None]


def list_subdirectories(path: str) -> list[str]:
    """Return the immediate subdirectories of ``path`` as joined paths.

    Symlinks to directories are not followed. Raises ``OSError`` when the
    directory cannot be read.
    """
    with os.scandir(path) as entries:
        names = sorted(entry.name for entry in entries if entry.is_dir(follow_symlinks=False))
    return [os.path.join(path, name) for name in names]


def discover(
    root: str,
    max_depth: int,
    excluded: ExclusionSet | Iterable[str] = (),
    *,
    lister: Lister = list_subdirectories,
    on_skip: SkipHandler | None = None,
) -> list[Frontier]:
    """Expand ``root`` level by level, returning ``max_depth + 1`` frontiers.

    Frontier 0 is ``(root,)``; the root is never checked against the
    exclusion set. Each later frontier holds the subdirectories of every
    non-excluded, readable path of the previous one, in discovery order.
    """
    if max_depth < 0:
        raise ValueError(f"max_depth must be >= 0, got {max_depth}")

    exclusions = as_exclusion_set(excluded)
    logger = get_runtime_logger()
    frontiers: list[Frontier] = [(root,)]

    def skip(path: str, reason: str, event: str) -> None:
        logger.warning(event, path=path, reason=reason)
        if on_skip is not None:
            on_skip(path, reason)

    for depth in range(max_depth):
        expanded: list[str] = []
        for path in frontiers[depth]:
            if depth > 0 and exclusions.excludes(path):
                skip(path, f"{path} is listed as excluded", "walker.skip.excluded")
                continue
            try:
                children = lister(path)
            except OSError as exc:
                skip(path, f"couldn't read {path}: {exc.strerror or exc}", "walker.skip.unreadable")
                continue
            expanded.extend(children)

        frontiers.append(tuple(expanded))
        logger.debug("walker.frontier", depth=depth + 1, size=len(expanded))

    return frontiers
