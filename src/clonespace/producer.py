"""Producer side: archive a finished build's workspace as its snapshot.

Archiving is best effort. Whatever goes wrong (bad patterns, unreadable
workspace, a full disk) is logged and reported in the :class:`PublishResult`,
but never raised, so a broken archive step cannot fail an otherwise good build.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from clonespace.foundation.errors import ClonespaceError
from clonespace.foundation.variables import expand_variables
from clonespace.lineage.criteria import meets
from clonespace.snapshot.patterns import DEFAULT_INCLUDE
from clonespace.snapshot.selector import PathSelector
from clonespace.snapshot.store import SnapshotStore

if TYPE_CHECKING:
    from clonespace.jobs.protocol import Build
    from clonespace.settings import ProducerSettings
    from clonespace.snapshot.formats import SnapshotArtifact

logger = logging.getLogger(__name__)


class PublishStatus(Enum):
    """Why a publish did or did not produce a snapshot."""

    ARCHIVED = "archived"
    CRITERIA_NOT_MET = "criteria-not-met"
    NO_WORKSPACE = "no-workspace"
    NO_MATCH = "no-match"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class PublishResult:
    """Outcome of one publish attempt."""

    status: PublishStatus
    include: str
    """Include patterns after variable expansion."""

    exclude: str | None = None
    artifact: SnapshotArtifact | None = None
    deleted_from: int | None = None
    """Number of the older build whose snapshot retention removed."""

    message: str = ""

    @property
    def archived(self) -> bool:
        return self.status is PublishStatus.ARCHIVED


class SnapshotPublisher:
    """Archives workspaces for one producing job's settings.

    Example:
        >>> publisher = SnapshotPublisher(ProducerSettings(include_glob="dist/**"))
        >>> result = publisher.publish(build)
        >>> result.status
        <PublishStatus.ARCHIVED: 'archived'>
    """

    def __init__(
        self,
        settings: ProducerSettings,
        store: SnapshotStore | None = None,
        selector: PathSelector | None = None,
    ) -> None:
        self.settings = settings
        self.store = store or SnapshotStore()
        self.selector = selector or PathSelector()

    def expanded_globs(self, build: Build) -> tuple[str, str | None]:
        """Include and exclude patterns with build variables substituted."""
        env = build.environment()
        include = self.settings.include_glob
        include = expand_variables(include, env) if include else DEFAULT_INCLUDE
        exclude = self.settings.exclude_glob
        if exclude:
            exclude = expand_variables(exclude, env)
        return include, exclude

    def publish(self, build: Build) -> PublishResult:
        """Archive ``build``'s workspace if the build is good enough."""
        include, exclude = self.expanded_globs(build)
        criterion = self.settings.criterion

        if not meets(build.outcome, criterion):
            message = f"Criteria not met: {build.display_name} is not at least {criterion.minimum_outcome.name}"
            logger.info("%s; not archiving", message)
            return PublishResult(PublishStatus.CRITERIA_NOT_MET, include, exclude, message=message)

        workspace = build.workspace
        if workspace is None:
            message = f"No workspace available for {build.display_name}"
            logger.warning(message)
            return PublishResult(PublishStatus.NO_WORKSPACE, include, exclude, message=message)

        logger.info("Archiving workspace of %s", build.display_name)
        use_default_excludes = not self.settings.suppress_default_excludes
        try:
            problem = self.selector.validate(workspace, include, exclude, use_default_excludes)
            if problem is not None:
                message = f"No files found matching '{include}': {problem}"
                logger.warning(message)
                return PublishResult(PublishStatus.NO_MATCH, include, exclude, message=message)

            selection = self.selector.resolve(
                workspace,
                include,
                exclude,
                use_default_excludes=use_default_excludes,
                complete=self.settings.complete_mode,
            )
            artifact = self.store.create(build, selection, self.settings.format)
        except (ClonespaceError, OSError) as e:
            message = f"Failed to archive '{include}': {e}"
            logger.error(message, exc_info=logger.isEnabledFor(logging.DEBUG))
            return PublishResult(PublishStatus.FAILED, include, exclude, message=message)

        older = self.store.retain(build, criterion)
        return PublishResult(
            PublishStatus.ARCHIVED,
            include,
            exclude,
            artifact=artifact,
            deleted_from=older.number if older is not None else None,
            message=f"Archived {artifact.path.name} for {build.display_name}",
        )
