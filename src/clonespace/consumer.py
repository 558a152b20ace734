"""Consumer side: clone an upstream snapshot into a build's workspace.

Checkout failures fail the consuming build: without the upstream filesystem
state there is nothing for it to work on. Polling, on the other hand, never
raises; anything that stops the upstream from resolving is reported as
``UPSTREAM_MISSING``.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from clonespace.foundation.errors import (
    ClonespaceError,
    RestoreFailedError,
)
from clonespace.foundation.variables import expand_variables
from clonespace.lineage.criteria import Outcome
from clonespace.lineage.resolver import LineageResolver, ResolvedSnapshot
from clonespace.snapshot.store import SnapshotStore
from clonespace.staleness import PollChange, PollResult, StalenessTracker

if TYPE_CHECKING:
    from clonespace.jobs.protocol import Build, Job, JobRegistry
    from clonespace.settings import ConsumerSettings

logger = logging.getLogger(__name__)

CHANGELOG_FILENAME = "changelog.xml"
EMPTY_CHANGELOG = '<?xml version="1.0" encoding="UTF-8"?>\n<log/>\n'


@dataclass(frozen=True, slots=True)
class CheckoutResult:
    """What a successful checkout restored."""

    upstream: ResolvedSnapshot
    """Upstream job, build and snapshot that were cloned."""

    destination: Path
    entries: int
    """Number of archive entries extracted."""

    @property
    def upstream_number(self) -> int:
        return self.upstream.build.number


class WorkspaceCloner:
    """Checkout and polling for one consuming job's settings."""

    def __init__(
        self,
        settings: ConsumerSettings,
        registry: JobRegistry,
        store: SnapshotStore | None = None,
        tracker: StalenessTracker | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.store = store or SnapshotStore()
        self.tracker = tracker or StalenessTracker()

    @property
    def resolver(self) -> LineageResolver:
        return self.store.resolver

    def upstream_job_name(self, build: Build | None) -> str:
        """Upstream job name with ``build``'s parameters substituted."""
        name = self.settings.upstream_job_name
        if build is None:
            return name
        return expand_variables(name, build.parameters())

    # ─────────────────────────────────────────────────────────────────
    # Checkout
    # ─────────────────────────────────────────────────────────────────

    def checkout(
        self,
        build: Build,
        destination: Path | None = None,
        changelog: Path | None = None,
    ) -> CheckoutResult:
        """Restore the qualifying upstream snapshot into the workspace.

        Also records the upstream build number for polling and copies the
        upstream changelog (or writes an empty one).

        Raises:
            ResolutionFailedError: No usable upstream snapshot.
            RestoreFailedError: The snapshot could not be restored.

            In both cases ``build`` is marked ``FAILURE`` first.
        """
        try:
            return self._checkout(build, destination, changelog)
        except ClonespaceError as e:
            logger.error("%s: %s", build.display_name, e)
            build.set_outcome(Outcome.FAILURE)
            raise

    def _checkout(
        self, build: Build, destination: Path | None, changelog: Path | None
    ) -> CheckoutResult:
        workspace = destination or build.workspace
        if workspace is None:
            raise RestoreFailedError(
                "<no workspace>", FileNotFoundError(f"{build.display_name} has no workspace")
            )

        job_name = self.upstream_job_name(build)
        resolved = self.resolver.resolve(self.registry, job_name, self.settings.criterion)
        while True:
            logger.info(
                "Restoring workspace from build #%d of project %s",
                resolved.build.number,
                job_name,
            )
            try:
                entries = self.store.restore(resolved.artifact, workspace)
                break
            except RestoreFailedError:
                if resolved.artifact.exists():
                    raise
            # Deleted by retention after it was resolved
            logger.warning(
                "Snapshot of %s vanished before restore; trying an older build",
                resolved.build.display_name,
            )
            resolved = self.resolver.resolve_from(
                job_name, resolved.build.previous_build(), self.settings.criterion
            )

        try:
            self.tracker.record(build, resolved.build.number)
            self._write_changelog(resolved.build, changelog or build.root_dir / CHANGELOG_FILENAME)
        except OSError as e:
            raise RestoreFailedError(str(workspace), e) from e

        return CheckoutResult(upstream=resolved, destination=workspace, entries=entries)

    @staticmethod
    def _write_changelog(upstream: Build, target: Path) -> None:
        source = upstream.root_dir / CHANGELOG_FILENAME
        target.parent.mkdir(parents=True, exist_ok=True)
        if source.is_file():
            shutil.copyfile(source, target)
        else:
            target.write_text(EMPTY_CHANGELOG, encoding="utf-8")

    # ─────────────────────────────────────────────────────────────────
    # Polling
    # ─────────────────────────────────────────────────────────────────

    def poll(self, job: Job) -> PollResult:
        """Decide whether ``job`` needs a new build.

        Only upstream builds that still carry a snapshot count, the same rule
        checkout applies. A missing upstream job disables ``job``.
        """
        last_build = job.last_build()
        recorded = self.tracker.read_nearest(last_build)
        job_name = self.upstream_job_name(last_build)

        upstream_job = self.registry.get_job(job_name)
        if upstream_job is None:
            message = f"Upstream project {job_name} of {job.name} does not exist; disabling {job.name}"
            logger.warning(message)
            job.disable()
            return PollResult(PollChange.UPSTREAM_MISSING, recorded, None, message)

        try:
            current = self.resolver.find(
                upstream_job.last_build(), self.settings.criterion, require_snapshot=True
            )
        except (ClonespaceError, OSError) as e:
            logger.warning("Polling %s failed: %s", job_name, e)
            current = None

        change = self.tracker.classify(current, recorded)
        if current is None:
            message = f"No build of {job_name} meets '{self.settings.criterion.value}' with a snapshot"
        elif change is PollChange.REBUILD_NEEDED:
            message = (
                f"Build #{current.number} of project {job_name} is newer than build "
                f"#{recorded}, so a new build of {job.name} will be run"
            )
        else:
            message = (
                f"Build #{current.number} of project {job_name} is NOT newer than build "
                f"#{recorded}, so no new build of {job.name} will be run"
            )
        logger.info(message)
        return PollResult(change, recorded, current.number if current else None, message)

    # ─────────────────────────────────────────────────────────────────
    # Configuration checks
    # ─────────────────────────────────────────────────────────────────

    def validate_upstream(self) -> str | None:
        """Configuration-time check of the upstream job name.

        Returns:
            None when the name is acceptable, otherwise a message.
        """
        name = self.settings.upstream_job_name
        if not name:
            return "An upstream job name is required"
        if "$" in name:
            # Depends on build parameters; checked at build time
            return None
        job = self.registry.get_job(name)
        if job is None:
            nearest = self.registry.find_nearest(name)
            hint = f" Did you mean '{nearest}'?" if nearest else ""
            return f"No such job '{name}'.{hint}"
        if job.producer is None:
            return f"Job '{name}' does not archive its workspace"
        return None
