"""Interfaces to the surrounding build system.

The snapshot and lineage code only ever talks to builds and jobs through these
protocols, so any CI host (or the directory-backed registry in
:mod:`clonespace.jobs.local`, or a test double) can plug in.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from clonespace.lineage.criteria import Outcome
    from clonespace.settings import ConsumerSettings, ProducerSettings
    from clonespace.snapshot.formats import SnapshotArtifact


@runtime_checkable
class Build(Protocol):
    """One execution of a job."""

    @property
    def number(self) -> int:
        """Build number, strictly increasing within a job."""
        ...

    @property
    def outcome(self) -> Outcome | None:
        """Final outcome, or None while unknown."""
        ...

    @property
    def building(self) -> bool:
        """Whether the build is still running."""
        ...

    @property
    def root_dir(self) -> Path:
        """Private directory for artifacts and bookkeeping files."""
        ...

    @property
    def workspace(self) -> Path | None:
        """Workspace the build ran in; None when it is unavailable."""
        ...

    @property
    def display_name(self) -> str:
        """Human-readable name such as ``app #12``."""
        ...

    @property
    def snapshot(self) -> SnapshotArtifact | None:
        """Snapshot associated with this build, if any."""
        ...

    def previous_build(self) -> Build | None:
        """Next-older build of the same job."""
        ...

    def attach_snapshot(self, artifact: SnapshotArtifact) -> None:
        """Associate a fully written snapshot with this build."""
        ...

    def detach_snapshot(self) -> None:
        """Drop the snapshot association."""
        ...

    def environment(self) -> Mapping[str, str]:
        """Variables visible to the build, parameters included."""
        ...

    def parameters(self) -> Mapping[str, str]:
        """Build parameters supplied at trigger time."""
        ...

    def set_outcome(self, outcome: Outcome) -> None:
        """Overwrite the build outcome (used to fail a consuming build)."""
        ...


@runtime_checkable
class Job(Protocol):
    """A named, repeatedly executed unit of work."""

    @property
    def name(self) -> str: ...

    @property
    def producer(self) -> ProducerSettings | None:
        """Snapshot publishing settings; None when the job does not publish."""
        ...

    @property
    def consumer(self) -> ConsumerSettings | None:
        """Workspace cloning settings; None when the job does not clone."""
        ...

    @property
    def disabled(self) -> bool: ...

    def last_build(self) -> Build | None:
        """Newest build, running or finished."""
        ...

    def disable(self) -> None:
        """Stop the job from being scheduled."""
        ...


@runtime_checkable
class JobRegistry(Protocol):
    """Explicit lookup service for jobs by name."""

    def get_job(self, name: str) -> Job | None:
        """Job with exactly this name, or None."""
        ...

    def find_nearest(self, name: str) -> str | None:
        """Closest existing job name, for "did you mean" hints."""
        ...

    def jobs(self) -> Iterable[Job]:
        """All jobs, sorted by name."""
        ...

    def eligible_parents(self) -> list[str]:
        """Names of jobs configured to publish snapshots."""
        ...
