"""Foundation layer: errors, logging, configuration, variable expansion."""

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
from clonespace.foundation.variables import expand_variables

__all__ = [
    "ArchiveCorruptError",
    "ClonespaceError",
    "ConfigError",
    "ErrorCode",
    "InvalidPatternError",
    "ResolutionFailedError",
    "ResolutionStage",
    "RestoreFailedError",
    "expand_variables",
]
