"""Track which upstream build a consumer cloned from and detect staleness.

Each consuming build records the upstream build number it restored in a
pointer file inside its ``root_dir``. Polling compares the upstream build the
resolver would pick today with the number recorded by the nearest consuming
build that has one.

State per consuming job::

    Unresolved ──checkout──▶ Resolved(n) ──poll sees n' > n──▶ Stale(n, n')
                                  ▲                                 │
                                  └────────────checkout─────────────┘
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from clonespace.lineage.history import BuildHistory

if TYPE_CHECKING:
    from clonespace.jobs.protocol import Build

logger = logging.getLogger(__name__)

POINTER_FILENAME = "clone-parent.txt"
"""Per-build file holding the upstream build number that was cloned."""

NO_UPSTREAM = 0
"""Recorded number meaning "no resolvable upstream build"."""


class PollChange(Enum):
    """What a poll tells the scheduler."""

    NO_CHANGES = "no-changes"
    REBUILD_NEEDED = "rebuild-needed"
    UPSTREAM_MISSING = "upstream-missing"


@dataclass(frozen=True, slots=True)
class PollResult:
    """Outcome of one poll of a consuming job."""

    change: PollChange
    """Classification handed to the scheduler."""

    recorded: int
    """Upstream build number the consumer last cloned (0 if none)."""

    current: int | None
    """Upstream build number that would be cloned now, if any."""

    message: str = ""
    """Human-readable explanation for the build log."""

    @property
    def rebuild_needed(self) -> bool:
        return self.change is PollChange.REBUILD_NEEDED


class StalenessTracker:
    """Reads and writes lineage pointers and classifies polls."""

    def __init__(self, filename: str = POINTER_FILENAME) -> None:
        self.filename = filename

    def record(self, build: Build, upstream_number: int) -> None:
        """Persist ``upstream_number`` as the sole line of the pointer file."""
        path = build.root_dir / self.filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"{upstream_number}\n", encoding="utf-8")
        logger.debug("%s cloned upstream build #%d", build.display_name, upstream_number)

    def read(self, build: Build) -> int:
        """Recorded upstream number for ``build``.

        The last line that parses as an integer wins; other lines are ignored.
        A missing or unreadable file gives ``0``.
        """
        path = build.root_dir / self.filename
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return NO_UPSTREAM
        except OSError as e:
            logger.warning("Cannot read %s: %s", path, e)
            return NO_UPSTREAM

        number = NO_UPSTREAM
        for line in text.splitlines():
            try:
                number = int(line.strip())
            except ValueError:
                continue
        return number

    def has_pointer(self, build: Build) -> bool:
        return (build.root_dir / self.filename).is_file()

    def read_nearest(self, build: Build | None) -> int:
        """Recorded number of the newest build at or below ``build`` that has one.

        Builds that were interrupted before recording are skipped.
        """
        if build is None:
            return NO_UPSTREAM
        for candidate in BuildHistory(build):
            if self.has_pointer(candidate):
                return self.read(candidate)
        return NO_UPSTREAM

    @staticmethod
    def classify(current: Build | None, recorded: int) -> PollChange:
        """Compare today's resolvable upstream build with the recorded one."""
        if current is None:
            return PollChange.UPSTREAM_MISSING
        if current.number > recorded:
            return PollChange.REBUILD_NEEDED
        return PollChange.NO_CHANGES
