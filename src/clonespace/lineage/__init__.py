"""Build lineage: quality criteria, history walking, upstream resolution."""

from clonespace.lineage.criteria import Criterion, Outcome, meets, minimum_outcome
from clonespace.lineage.history import BuildHistory
from clonespace.lineage.resolver import LineageResolver, ResolvedSnapshot, resolve_job

__all__ = [
    "BuildHistory",
    "Criterion",
    "LineageResolver",
    "Outcome",
    "ResolvedSnapshot",
    "meets",
    "minimum_outcome",
    "resolve_job",
]
