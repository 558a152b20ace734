"""Create, retain and restore workspace snapshots of builds."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from clonespace.foundation.errors import ArchiveCorruptError, RestoreFailedError
from clonespace.lineage.resolver import LineageResolver
from clonespace.snapshot.codec import ArchiveCodec
from clonespace.snapshot.formats import ArchiveFormat, SnapshotArtifact

if TYPE_CHECKING:
    from clonespace.jobs.protocol import Build
    from clonespace.lineage.criteria import Criterion
    from clonespace.snapshot.selector import PathSelection

logger = logging.getLogger(__name__)

_PARTIAL_SUFFIX = ".partial"


class SnapshotStore:
    """Owns the lifecycle of snapshot artifacts.

    Artifacts live at a fixed name per format inside the owning build's
    ``root_dir``. A snapshot is attached to its build only once the archive has
    been completely written and moved into place, so an interrupted pack never
    leaves a half-written artifact that resolution could pick up.
    """

    def __init__(
        self,
        codec: ArchiveCodec | None = None,
        resolver: LineageResolver | None = None,
    ) -> None:
        self.codec = codec or ArchiveCodec()
        self.resolver = resolver or LineageResolver()

    @staticmethod
    def artifact_path(build: Build, fmt: ArchiveFormat) -> Path:
        return build.root_dir / fmt.filename

    # ─────────────────────────────────────────────────────────────────
    # Create / retain
    # ─────────────────────────────────────────────────────────────────

    def create(
        self, build: Build, selection: PathSelection, fmt: ArchiveFormat
    ) -> SnapshotArtifact:
        """Archive ``selection`` as ``build``'s snapshot.

        Raises:
            OSError: If the archive cannot be written. Nothing is attached and
                no partial file is left behind.
        """
        final_path = self.artifact_path(build, fmt)
        partial_path = final_path.with_name(final_path.name + _PARTIAL_SUFFIX)
        final_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(partial_path, "wb") as sink:
                entries = self.codec.pack(selection, sink, fmt)
            os.replace(partial_path, final_path)
        finally:
            if partial_path.exists():
                partial_path.unlink()

        artifact = SnapshotArtifact(build_number=build.number, format=fmt, path=final_path)
        build.attach_snapshot(artifact)
        logger.info(
            "Archived %d entries of %s into %s", entries, build.display_name, final_path
        )
        return artifact

    def retain(self, build: Build, criterion: Criterion | str | None) -> Build | None:
        """Delete the snapshot of the newest older build that still has one.

        Only builds strictly older than ``build`` are considered. Deletion
        failures are logged and the association is left in place.

        Returns:
            The build whose snapshot was removed, or None.
        """
        older = self.resolver.find(
            build.previous_build(), criterion, require_snapshot=True, verify_files=False
        )
        if older is None:
            return None

        artifact = older.snapshot
        if artifact is None:
            return None
        try:
            artifact.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not delete old snapshot %s: %s", artifact.path, e)
            return None

        older.detach_snapshot()
        logger.info("Deleted old snapshot of %s", older.display_name)
        return older

    # ─────────────────────────────────────────────────────────────────
    # Restore
    # ─────────────────────────────────────────────────────────────────

    def restore(self, artifact: SnapshotArtifact, destination: Path) -> int:
        """Replace the contents of ``destination`` with the snapshot.

        Returns:
            Number of entries extracted.

        Raises:
            RestoreFailedError: On any failure. When the artifact file itself
                cannot be opened the destination is left untouched; otherwise
                it may be partially written.
        """
        try:
            with open(artifact.path, "rb") as source:
                _clear_directory(destination)
                return self.codec.unpack(
                    source, destination, artifact.format, name=str(artifact.path)
                )
        except (OSError, ArchiveCorruptError) as e:
            raise RestoreFailedError(str(destination), e) from e


def _clear_directory(directory: Path) -> None:
    """Remove everything inside ``directory``, creating it if missing."""
    if directory.is_symlink() or (directory.exists() and not directory.is_dir()):
        directory.unlink()
    directory.mkdir(parents=True, exist_ok=True)
    for entry in directory.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
