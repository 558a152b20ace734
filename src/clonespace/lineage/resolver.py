"""Find the newest upstream build that satisfies a quality criterion."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from clonespace.foundation.errors import ResolutionFailedError, ResolutionStage
from clonespace.lineage.criteria import Criterion, meets
from clonespace.lineage.history import BuildHistory

if TYPE_CHECKING:
    from clonespace.jobs.protocol import Build, JobRegistry
    from clonespace.snapshot.formats import SnapshotArtifact

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResolvedSnapshot:
    """An upstream build chosen for cloning, with its snapshot."""

    job_name: str
    """Upstream job the build belongs to."""

    build: Build
    """Newest build meeting the criterion that carries a snapshot."""

    artifact: SnapshotArtifact
    """The build's snapshot."""


class LineageResolver:
    """Walks build history newest to oldest looking for a qualifying build.

    A build qualifies when it has finished, its outcome is known, and the
    outcome is at least the criterion's minimum (inclusive). When
    ``require_snapshot`` is set the build must also carry a snapshot; with
    ``verify_files`` (the default) a snapshot whose backing file has gone
    missing is skipped with a warning and the walk continues.

    Example:
        >>> resolver = LineageResolver()
        >>> build = resolver.find(job.last_build(), Criterion.SUCCESSFUL)
    """

    def find(
        self,
        head: Build | None,
        criterion: Criterion | str | None,
        require_snapshot: bool = False,
        verify_files: bool = True,
    ) -> Build | None:
        """Return the newest qualifying build at or below ``head``.

        Args:
            head: Build to start from; ``None`` gives ``None``
            criterion: Minimum quality
            require_snapshot: Only accept builds carrying a snapshot
            verify_files: Skip snapshots whose file is missing

        Returns:
            The qualifying build, or None when history is exhausted.
        """
        if head is None:
            return None

        for build in BuildHistory(head):
            if build.building or not meets(build.outcome, criterion):
                continue
            if not require_snapshot:
                return build
            artifact = build.snapshot
            if artifact is None:
                continue
            if verify_files and not artifact.exists():
                logger.warning(
                    "Snapshot of %s is missing at %s; trying an older build",
                    build.display_name,
                    artifact.path,
                )
                continue
            return build
        return None

    def find_snapshot(
        self, head: Build | None, criterion: Criterion | str | None
    ) -> SnapshotArtifact | None:
        """Snapshot of the newest qualifying build that still has one."""
        build = self.find(head, criterion, require_snapshot=True)
        return build.snapshot if build is not None else None

    def resolve_from(
        self, job_name: str, head: Build | None, criterion: Criterion | str | None
    ) -> ResolvedSnapshot:
        """Resolve a snapshot starting at ``head`` within ``job_name``.

        Raises:
            ResolutionFailedError: With stage ``NO_QUALIFYING_BUILD`` when no
                finished build meets the criterion, or ``NO_ARTIFACT`` when
                such builds exist but none carries a usable snapshot.
        """
        criterion = Criterion.parse(criterion)
        build = self.find(head, criterion, require_snapshot=True)
        if build is None:
            stage = (
                ResolutionStage.NO_QUALIFYING_BUILD
                if self.find(head, criterion) is None
                else ResolutionStage.NO_ARTIFACT
            )
            raise ResolutionFailedError(stage, job_name, criterion.value)

        artifact = build.snapshot
        if artifact is None:
            raise ResolutionFailedError(ResolutionStage.NO_ARTIFACT, job_name, criterion.value)
        logger.debug("Resolved %s to %s", job_name, build.display_name)
        return ResolvedSnapshot(job_name=job_name, build=build, artifact=artifact)

    def resolve(
        self, registry: JobRegistry, job_name: str, criterion: Criterion | str | None
    ) -> ResolvedSnapshot:
        """Resolve the snapshot to clone from the job named ``job_name``.

        Raises:
            ResolutionFailedError: ``JOB_NOT_FOUND`` (with the nearest job name
                as a hint) or any failure from :meth:`resolve_from`.
        """
        job = registry.get_job(job_name)
        if job is None:
            raise ResolutionFailedError(
                ResolutionStage.JOB_NOT_FOUND,
                job_name,
                Criterion.parse(criterion).value,
                nearest=registry.find_nearest(job_name),
            )
        return self.resolve_from(job.name, job.last_build(), criterion)


def resolve_job(
    registry: JobRegistry, job_name: str, criterion: Criterion | str | None
) -> ResolvedSnapshot:
    """Resolve ``job_name`` with a default :class:`LineageResolver`."""
    return LineageResolver().resolve(registry, job_name, criterion)
