"""Workspace snapshots: path selection, archive codec, artifact store."""

from clonespace.snapshot.codec import ArchiveCodec
from clonespace.snapshot.formats import ArchiveFormat, SnapshotArtifact
from clonespace.snapshot.patterns import DEFAULT_EXCLUDES, FileSetMatcher
from clonespace.snapshot.selector import PathSelection, PathSelector
from clonespace.snapshot.store import SnapshotStore

__all__ = [
    "DEFAULT_EXCLUDES",
    "ArchiveCodec",
    "ArchiveFormat",
    "FileSetMatcher",
    "PathSelection",
    "PathSelector",
    "SnapshotArtifact",
    "SnapshotStore",
]
