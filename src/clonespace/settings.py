"""Producer and consumer settings - the configuration surface of a job."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from clonespace.lineage.criteria import Criterion
from clonespace.snapshot.formats import ArchiveFormat


@dataclass(frozen=True, slots=True)
class ProducerSettings:
    """How a producing job archives its workspace after each build."""

    include_glob: str = ""
    """Ant patterns to archive; empty means ``**/*``. May contain ``$VARS``."""

    exclude_glob: str | None = None
    """Ant patterns to leave out. May contain ``$VARS``."""

    criterion: Criterion = Criterion.ANY
    """Minimum outcome for a build's workspace to be archived."""

    format: ArchiveFormat = ArchiveFormat.TAR_GZ
    """Archive format for the snapshot."""

    suppress_default_excludes: bool = False
    """Archive VCS metadata (``.git`` and friends) too."""

    complete_mode: bool = False
    """Preserve directories, including empty ones."""

    def __post_init__(self) -> None:
        exclude = (self.exclude_glob or "").strip() or None
        object.__setattr__(self, "include_glob", (self.include_glob or "").strip())
        object.__setattr__(self, "exclude_glob", exclude)
        object.__setattr__(self, "criterion", Criterion.parse(self.criterion))
        object.__setattr__(self, "format", ArchiveFormat.parse(self.format or ArchiveFormat.TAR_GZ))
        object.__setattr__(self, "suppress_default_excludes", bool(self.suppress_default_excludes))
        object.__setattr__(self, "complete_mode", bool(self.complete_mode))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProducerSettings:
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    def to_dict(self) -> dict[str, Any]:
        return {
            "include_glob": self.include_glob,
            "exclude_glob": self.exclude_glob,
            "criterion": self.criterion.value,
            "format": self.format.value,
            "suppress_default_excludes": self.suppress_default_excludes,
            "complete_mode": self.complete_mode,
        }


@dataclass(frozen=True, slots=True)
class ConsumerSettings:
    """Where a consuming job clones its workspace from."""

    upstream_job_name: str
    """Producing job; may contain ``$PARAM`` placeholders from build parameters."""

    criterion: Criterion = Criterion.ANY
    """Minimum outcome of the upstream build to clone."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "upstream_job_name", self.upstream_job_name.strip())
        object.__setattr__(self, "criterion", Criterion.parse(self.criterion))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsumerSettings:
        return cls(
            upstream_job_name=str(data.get("upstream_job_name") or ""),
            criterion=data.get("criterion", Criterion.ANY),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "upstream_job_name": self.upstream_job_name,
            "criterion": self.criterion.value,
        }
