"""Explicit cursor over a job's build history."""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from clonespace.jobs.protocol import Build


class BuildHistory:
    """Position in a build history, walking from newest to oldest.

    This is the only place that follows ``previous_build()`` links. Iteration
    stops if a link would not move strictly backwards, so a misbehaving host
    cannot send the walk into a cycle.
    """

    __slots__ = ("_build",)

    def __init__(self, build: Build) -> None:
        self._build = build

    def current(self) -> Build:
        return self._build

    def previous(self) -> BuildHistory | None:
        older = self._build.previous_build()
        if older is None or older.number >= self._build.number:
            return None
        return BuildHistory(older)

    def __iter__(self) -> Iterator[Build]:
        cursor: BuildHistory | None = self
        while cursor is not None:
            yield cursor.current()
            cursor = cursor.previous()

    def __repr__(self) -> str:
        return f"BuildHistory(at={self._build.number})"
