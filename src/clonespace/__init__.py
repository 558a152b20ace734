"""clonespace - clone a workspace from one job's build into another's.

A producing job archives a selection of its workspace after each qualifying
build. A consuming job restores the newest snapshot whose build meets a
quality criterion, and polling reports when a newer one appears.
"""

from clonespace.consumer import CheckoutResult, WorkspaceCloner
from clonespace.foundation.errors import (
    ArchiveCorruptError,
    ClonespaceError,
    ConfigError,
    ErrorCode,
    InvalidPatternError,
    ResolutionFailedError,
    ResolutionStage,
    RestoreFailedError,
)
from clonespace.lineage import (
    BuildHistory,
    Criterion,
    LineageResolver,
    Outcome,
    ResolvedSnapshot,
    minimum_outcome,
    resolve_job,
)
from clonespace.producer import PublishResult, PublishStatus, SnapshotPublisher
from clonespace.settings import ConsumerSettings, ProducerSettings
from clonespace.snapshot import (
    ArchiveCodec,
    ArchiveFormat,
    PathSelection,
    PathSelector,
    SnapshotArtifact,
    SnapshotStore,
)
from clonespace.staleness import PollChange, PollResult, StalenessTracker

__version__ = "0.1.0"

__all__ = [
    # Errors
    "ClonespaceError",
    "ErrorCode",
    "InvalidPatternError",
    "ArchiveCorruptError",
    "ResolutionFailedError",
    "ResolutionStage",
    "RestoreFailedError",
    "ConfigError",
    # Lineage
    "Outcome",
    "Criterion",
    "minimum_outcome",
    "BuildHistory",
    "LineageResolver",
    "ResolvedSnapshot",
    "resolve_job",
    # Snapshots
    "ArchiveFormat",
    "SnapshotArtifact",
    "PathSelection",
    "PathSelector",
    "ArchiveCodec",
    "SnapshotStore",
    # Staleness
    "PollChange",
    "PollResult",
    "StalenessTracker",
    # Orchestration
    "ProducerSettings",
    "ConsumerSettings",
    "SnapshotPublisher",
    "PublishResult",
    "PublishStatus",
    "WorkspaceCloner",
    "CheckoutResult",
]
