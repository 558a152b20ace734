"""Build, job and registry interfaces plus the local directory-backed registry."""

from clonespace.jobs.local import LocalBuild, LocalJob, LocalJobRegistry
from clonespace.jobs.protocol import Build, Job, JobRegistry

__all__ = [
    "Build",
    "Job",
    "JobRegistry",
    "LocalBuild",
    "LocalJob",
    "LocalJobRegistry",
]
