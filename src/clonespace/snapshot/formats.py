"""Archive formats and the snapshot artifact record."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any


class ArchiveFormat(str, Enum):
    """Closed set of on-disk snapshot formats."""

    ZIP = "zip"
    TAR = "tar"
    TAR_GZ = "tar.gz"

    @property
    def filename(self) -> str:
        """Fixed artifact file name, so a build holds one artifact per format."""
        return f"workspace.{self.value}"

    @property
    def tar_compression(self) -> str:
        """Compression suffix for ``tarfile`` stream modes (``""`` or ``"gz"``)."""
        return "gz" if self is ArchiveFormat.TAR_GZ else ""

    @classmethod
    def parse(cls, value: str | ArchiveFormat) -> ArchiveFormat:
        """Parse a format name.

        Case-insensitive; accepts the enum values and names, ``tgz``, and the
        legacy label ``TARONLY`` for an uncompressed tar.

        Raises:
            ValueError: If the name is not a known format.
        """
        if isinstance(value, ArchiveFormat):
            return value
        key = value.strip().lower().lstrip(".")
        aliases = {
            "zip": cls.ZIP,
            "tar": cls.TAR,
            "taronly": cls.TAR,
            "tar.gz": cls.TAR_GZ,
            "tar_gz": cls.TAR_GZ,
            "targz": cls.TAR_GZ,
            "tgz": cls.TAR_GZ,
        }
        try:
            return aliases[key]
        except KeyError:
            raise ValueError(f"Unknown archive format: {value!r}") from None


@dataclass(frozen=True, slots=True)
class SnapshotArtifact:
    """One archived workspace snapshot belonging to one build."""

    build_number: int
    """Number of the build that owns the artifact."""

    format: ArchiveFormat
    """Format the archive was written in."""

    path: Path
    """Backing archive file inside the build's private directory."""

    def exists(self) -> bool:
        """Whether the backing file is still on disk."""
        return self.path.is_file()

    def to_dict(self) -> dict[str, Any]:
        return {
            "build_number": self.build_number,
            "format": self.format.value,
            "path": str(self.path),
        }
