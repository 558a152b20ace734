"""Directory-backed job registry.

Layout under the registry home::

    jobs/<job>/job.yaml              settings, disabled flag, next build number
    jobs/<job>/workspace/            the job workspace
    jobs/<job>/builds/<n>/build.yaml outcome, parameters, environment, snapshot
    jobs/<job>/builds/<n>/...        artifacts and bookkeeping files

Metadata is YAML and every write goes through a temp file plus ``os.replace``
so a crash never leaves a half-written ``build.yaml`` behind.
"""

from __future__ import annotations

import difflib
import logging
import os
import re
import tempfile
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import yaml

from clonespace.lineage.criteria import Outcome
from clonespace.settings import ConsumerSettings, ProducerSettings
from clonespace.snapshot.formats import ArchiveFormat, SnapshotArtifact

logger = logging.getLogger(__name__)

_JOB_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _write_yaml(path: Path, data: dict[str, Any]) -> None:
    """Atomically replace ``path`` with ``data`` serialized as YAML."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(suffix=".tmp", prefix=f"{path.stem}_", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class LocalBuild:
    """A build whose state lives in ``builds/<n>/build.yaml``."""

    def __init__(
        self,
        job: LocalJob,
        number: int,
        lineage: tuple[list[int], int] | None = None,
    ) -> None:
        self._job = job
        self._number = number
        # Job build numbers (newest first) and where to resume looking for older ones
        self._lineage = lineage
        self._data = _read_yaml(self.metadata_path)

    def __repr__(self) -> str:
        return f"LocalBuild({self.display_name!r}, outcome={self.outcome!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LocalBuild):
            return NotImplemented
        return self._job.name == other._job.name and self._number == other._number

    def __hash__(self) -> int:
        return hash((self._job.name, self._number))

    @property
    def job(self) -> LocalJob:
        return self._job

    @property
    def number(self) -> int:
        return self._number

    @property
    def root_dir(self) -> Path:
        return self._job.builds_dir / str(self._number)

    @property
    def metadata_path(self) -> Path:
        return self.root_dir / "build.yaml"

    @property
    def outcome(self) -> Outcome | None:
        value = self._data.get("outcome")
        return Outcome.parse(value) if value else None

    @property
    def building(self) -> bool:
        return bool(self._data.get("building", False))

    @property
    def workspace(self) -> Path | None:
        return self._job.workspace_dir

    @property
    def display_name(self) -> str:
        return f"{self._job.name} #{self._number}"

    @property
    def snapshot(self) -> SnapshotArtifact | None:
        fmt = self._data.get("snapshot")
        if not fmt:
            return None
        archive_format = ArchiveFormat.parse(fmt)
        return SnapshotArtifact(
            build_number=self._number,
            format=archive_format,
            path=self.root_dir / archive_format.filename,
        )

    def previous_build(self) -> LocalBuild | None:
        """Next older existing build; a walk lists the builds directory once."""
        numbers, start = self._lineage or (self._job.build_numbers(), 0)
        for index in range(start, len(numbers)):
            if numbers[index] < self._number:
                return LocalBuild(self._job, numbers[index], lineage=(numbers, index + 1))
        return None

    def attach_snapshot(self, artifact: SnapshotArtifact) -> None:
        self._data["snapshot"] = artifact.format.value
        self._save()

    def detach_snapshot(self) -> None:
        if self._data.pop("snapshot", None) is not None:
            self._save()

    def parameters(self) -> dict[str, str]:
        return {str(k): str(v) for k, v in (self._data.get("parameters") or {}).items()}

    def environment(self) -> dict[str, str]:
        env = {
            "BUILD_NUMBER": str(self._number),
            "JOB_NAME": self._job.name,
            "WORKSPACE": str(self._job.workspace_dir),
        }
        env.update({str(k): str(v) for k, v in (self._data.get("environment") or {}).items()})
        env.update(self.parameters())
        return env

    def set_outcome(self, outcome: Outcome) -> None:
        self._data["outcome"] = outcome.name
        self._save()

    def finish(self, outcome: Outcome) -> None:
        """Mark the build complete with ``outcome``."""
        self._data["outcome"] = outcome.name
        self._data["building"] = False
        self._save()
        logger.debug("%s finished as %s", self.display_name, outcome.name)

    def _save(self) -> None:
        _write_yaml(self.metadata_path, {"number": self._number, **self._data})


class LocalJob:
    """A job directory with its settings and build history."""

    def __init__(self, registry: LocalJobRegistry, name: str) -> None:
        self._registry = registry
        self._name = name
        self._data = _read_yaml(self.metadata_path)

    def __repr__(self) -> str:
        return f"LocalJob({self._name!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def job_dir(self) -> Path:
        return self._registry.jobs_dir / self._name

    @property
    def metadata_path(self) -> Path:
        return self.job_dir / "job.yaml"

    @property
    def workspace_dir(self) -> Path:
        return self.job_dir / "workspace"

    @property
    def builds_dir(self) -> Path:
        return self.job_dir / "builds"

    @property
    def producer(self) -> ProducerSettings | None:
        data = self._data.get("producer")
        return ProducerSettings.from_dict(data) if isinstance(data, dict) else None

    @property
    def consumer(self) -> ConsumerSettings | None:
        data = self._data.get("consumer")
        return ConsumerSettings.from_dict(data) if isinstance(data, dict) else None

    @property
    def disabled(self) -> bool:
        return bool(self._data.get("disabled", False))

    def disable(self) -> None:
        self._data["disabled"] = True
        self._save()
        logger.info("Disabled job %s", self._name)

    def enable(self) -> None:
        self._data["disabled"] = False
        self._save()

    def configure(
        self,
        producer: ProducerSettings | None = None,
        consumer: ConsumerSettings | None = None,
    ) -> None:
        """Replace the job's producer and/or consumer settings."""
        if producer is not None:
            self._data["producer"] = producer.to_dict()
        if consumer is not None:
            self._data["consumer"] = consumer.to_dict()
        self._save()

    def build_numbers(self) -> list[int]:
        """Existing build numbers, newest first."""
        if not self.builds_dir.is_dir():
            return []
        numbers = [
            int(entry.name)
            for entry in self.builds_dir.iterdir()
            if entry.is_dir() and entry.name.isdigit()
        ]
        return sorted(numbers, reverse=True)

    def builds(self) -> Iterator[LocalBuild]:
        """Builds newest first."""
        numbers = self.build_numbers()
        for index, number in enumerate(numbers):
            yield LocalBuild(self, number, lineage=(numbers, index + 1))

    def get_build(self, number: int) -> LocalBuild | None:
        if not (self.builds_dir / str(number)).is_dir():
            return None
        return LocalBuild(self, number)

    def last_build(self) -> LocalBuild | None:
        numbers = self.build_numbers()
        return LocalBuild(self, numbers[0], lineage=(numbers, 1)) if numbers else None

    def new_build(
        self,
        parameters: Mapping[str, str] | None = None,
        environment: Mapping[str, str] | None = None,
    ) -> LocalBuild:
        """Start a new, running build with the next build number."""
        numbers = self.build_numbers()
        number = max(int(self._data.get("next_build_number", 1)), (numbers[0] + 1) if numbers else 1)
        self._data["next_build_number"] = number + 1
        self._save()

        root = self.builds_dir / str(number)
        root.mkdir(parents=True)
        _write_yaml(
            root / "build.yaml",
            {
                "number": number,
                "outcome": None,
                "building": True,
                "parameters": dict(parameters or {}),
                "environment": dict(environment or {}),
            },
        )
        self.workspace_dir.mkdir(parents=True, exist_ok=True)
        logger.debug("Started %s #%d", self._name, number)
        return LocalBuild(self, number)

    def _save(self) -> None:
        _write_yaml(self.metadata_path, self._data)


class LocalJobRegistry:
    """Job registry rooted at a home directory.

    Example:
        >>> registry = LocalJobRegistry(Path("/tmp/clonespace"))
        >>> job = registry.create_job("app", producer=ProducerSettings())
        >>> build = job.new_build()
        >>> build.finish(Outcome.SUCCESS)
    """

    def __init__(self, home: Path) -> None:
        self.home = Path(home)

    @property
    def jobs_dir(self) -> Path:
        return self.home / "jobs"

    def create_job(
        self,
        name: str,
        producer: ProducerSettings | None = None,
        consumer: ConsumerSettings | None = None,
    ) -> LocalJob:
        """Create a job (or reconfigure an existing one).

        Raises:
            ValueError: If ``name`` is not a usable directory name.
        """
        if not _JOB_NAME_RE.match(name):
            raise ValueError(f"Invalid job name: {name!r}")
        job = LocalJob(self, name)
        job.job_dir.mkdir(parents=True, exist_ok=True)
        job.workspace_dir.mkdir(exist_ok=True)
        job.configure(producer=producer, consumer=consumer)
        return job

    def get_job(self, name: str) -> LocalJob | None:
        if not _JOB_NAME_RE.match(name):
            return None
        if not (self.jobs_dir / name / "job.yaml").is_file():
            return None
        return LocalJob(self, name)

    def job_names(self) -> list[str]:
        if not self.jobs_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.jobs_dir.iterdir()
            if (entry / "job.yaml").is_file()
        )

    def jobs(self) -> list[LocalJob]:
        return [LocalJob(self, name) for name in self.job_names()]

    def find_nearest(self, name: str) -> str | None:
        matches = difflib.get_close_matches(name, self.job_names(), n=1, cutoff=0.0)
        return matches[0] if matches else None

    def eligible_parents(self) -> list[str]:
        return [job.name for job in self.jobs() if job.producer is not None]
