"""Exact-path exclusion used by discovery and backlog building."""

from __future__ import annotations

from typing import Iterable, Iterator


class ExclusionSet:
    """Fixed set of absolute paths compared by exact string equality.

    No normalisation or pattern matching happens here: ``/proc`` excludes
    ``/proc`` only, not ``/proc/`` or ``/proc/1``.
    """

    def __init__(self, paths: Iterable[str] = ()) -> None:
        self._paths = frozenset(paths)

    def excludes(self, path: str) -> bool:
        return path in self._paths

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._paths))

    def __len__(self) -> int:
        return len(self._paths)

    def __repr__(self) -> str:
        return f"ExclusionSet({sorted(self._paths)!r})"


def as_exclusion_set(excluded: ExclusionSet | Iterable[str]) -> ExclusionSet:
    if isinstance(excluded, ExclusionSet):
        return excluded
    return ExclusionSet(excluded)
