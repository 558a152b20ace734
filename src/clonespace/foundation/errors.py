"""Clonespace Error System.

Provides structured error handling with:
- Numeric error codes for programmatic handling
- User-friendly messages
- Recovery hints for the build log
- Context for debugging

Python's ``OSError`` plays the role of the generic I/O failure and is never
wrapped by the archive codec; the checkout path wraps it in
:class:`RestoreFailedError`.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Numeric error codes organized by category.

    Format: XYYY where X = category, YYY = specific error

    Categories:
        1xxx - Pattern errors
        2xxx - Archive errors
        3xxx - Resolution errors
        4xxx - Restore errors
        5xxx - Configuration errors
    """

    # 1xxx - Pattern Errors
    PATTERN_INVALID = 1001

    # 2xxx - Archive Errors
    ARCHIVE_CORRUPT = 2001
    ARCHIVE_UNSAFE_MEMBER = 2002

    # 3xxx - Resolution Errors
    RESOLVE_JOB_NOT_FOUND = 3001
    RESOLVE_NO_QUALIFYING_BUILD = 3002
    RESOLVE_NO_ARTIFACT = 3003

    # 4xxx - Restore Errors
    RESTORE_FAILED = 4001

    # 5xxx - Configuration Errors
    CONFIG_INVALID = 5001

    @property
    def category(self) -> str:
        """Get the error category name."""
        prefix = self.value // 1000
        return {
            1: "pattern",
            2: "archive",
            3: "resolution",
            4: "restore",
            5: "config",
        }.get(prefix, "unknown")

    @property
    def is_recoverable(self) -> bool:
        """Whether this error type is typically recoverable by reconfiguring."""
        non_recoverable = {
            ErrorCode.ARCHIVE_CORRUPT,
            ErrorCode.ARCHIVE_UNSAFE_MEMBER,
        }
        return self not in non_recoverable


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.PATTERN_INVALID: "Invalid file pattern '{pattern}': {detail}",
    ErrorCode.ARCHIVE_CORRUPT: "Archive '{source}' is corrupt or truncated: {detail}",
    ErrorCode.ARCHIVE_UNSAFE_MEMBER: "Archive member '{member}' escapes the destination: {detail}",
    ErrorCode.RESOLVE_JOB_NOT_FOUND: "No such job '{job}'.",
    ErrorCode.RESOLVE_NO_QUALIFYING_BUILD: (
        "No build with criteria '{criterion}' found for job '{job}'."
    ),
    ErrorCode.RESOLVE_NO_ARTIFACT: (
        "No workspace snapshot is archived for job '{job}' with criteria '{criterion}'."
    ),
    ErrorCode.RESTORE_FAILED: "Failed to restore snapshot into '{destination}': {detail}",
    ErrorCode.CONFIG_INVALID: "Invalid configuration for '{key}': {detail}",
}


# Recovery hints shown beneath the message
RECOVERY_HINTS: dict[ErrorCode, list[str]] = {
    ErrorCode.PATTERN_INVALID: [
        "Use paths relative to the workspace root (no leading '/' and no '..')",
        "Write '**' as a whole path segment, e.g. 'src/**/*.py'",
    ],
    ErrorCode.RESOLVE_JOB_NOT_FOUND: [
        "Did you mean '{nearest}'?",
        "Use 'clonespace jobs' to list jobs that archive their workspace",
    ],
    ErrorCode.RESOLVE_NO_QUALIFYING_BUILD: [
        "Run a build of '{job}' that meets '{criterion}'",
        "Relax the criteria (e.g. 'Any' instead of 'Successful')",
    ],
    ErrorCode.RESOLVE_NO_ARTIFACT: [
        "Configure '{job}' to archive its workspace and rebuild it",
    ],
    ErrorCode.CONFIG_INVALID: [
        "Check .clonespace/config.yaml and CLONESPACE_* environment variables",
    ],
}


class ClonespaceError(Exception):
    """Base error type for all clonespace errors.

    Provides structured error information for:
    - Programmatic error handling (code)
    - User-friendly display (message)
    - Build-log guidance (recovery_hints)
    - Debugging (context, cause)

    Example:
        >>> err = ClonespaceError(
        ...     code=ErrorCode.RESOLVE_JOB_NOT_FOUND,
        ...     context={"job": "upstrem", "nearest": "upstream"},
        ... )
        >>> print(err)
        [CS-3001] No such job 'upstrem'.
        >>> print(err.recovery_hints[0])
        Did you mean 'upstream'?
    """

    def __init__(
        self,
        code: ErrorCode,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        self.code = code
        self.context = context or {}
        self.cause = cause
        super().__init__(str(self))

    @property
    def message(self) -> str:
        """Get the formatted user-friendly message."""
        template = ERROR_MESSAGES.get(self.code, "An error occurred: {detail}")
        try:
            return template.format(**self.context)
        except KeyError:
            return template

    @property
    def recovery_hints(self) -> list[str]:
        """Get recovery suggestions for this error."""
        formatted = []
        for hint in RECOVERY_HINTS.get(self.code, []):
            try:
                formatted.append(hint.format(**self.context))
            except KeyError:
                continue
        return formatted

    @property
    def is_recoverable(self) -> bool:
        """Whether this error is typically recoverable."""
        return self.code.is_recoverable

    @property
    def category(self) -> str:
        """Get the error category."""
        return self.code.category

    @property
    def error_id(self) -> str:
        """Get the error ID string (e.g., 'CS-3001')."""
        return f"CS-{self.code.value}"

    def __str__(self) -> str:
        return f"[{self.error_id}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, context={self.context!r})"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict for logging/JSON output."""
        return {
            "error_id": self.error_id,
            "code": self.code.value,
            "category": self.category,
            "message": self.message,
            "recoverable": self.is_recoverable,
            "recovery_hints": self.recovery_hints,
            "context": {k: str(v) for k, v in self.context.items()},
        }


class InvalidPatternError(ClonespaceError):
    """An Ant-style include or exclude pattern failed validation."""

    def __init__(self, pattern: str, detail: str) -> None:
        super().__init__(
            ErrorCode.PATTERN_INVALID,
            context={"pattern": pattern, "detail": detail},
        )

    @property
    def pattern(self) -> str:
        return self.context["pattern"]

    @property
    def detail(self) -> str:
        return self.context["detail"]


class ArchiveCorruptError(ClonespaceError):
    """The archive stream is truncated, malformed, or carries unsafe members."""

    def __init__(
        self,
        source: str,
        detail: str,
        cause: BaseException | None = None,
        member: str | None = None,
    ) -> None:
        code = ErrorCode.ARCHIVE_UNSAFE_MEMBER if member else ErrorCode.ARCHIVE_CORRUPT
        context: dict[str, Any] = {"source": source, "detail": detail}
        if member:
            context["member"] = member
        super().__init__(code, context=context, cause=cause)


class ResolutionStage(str, Enum):
    """Which step of upstream resolution failed."""

    JOB_NOT_FOUND = "job-not-found"
    NO_QUALIFYING_BUILD = "no-qualifying-build"
    NO_ARTIFACT = "no-artifact"


_STAGE_CODES = {
    ResolutionStage.JOB_NOT_FOUND: ErrorCode.RESOLVE_JOB_NOT_FOUND,
    ResolutionStage.NO_QUALIFYING_BUILD: ErrorCode.RESOLVE_NO_QUALIFYING_BUILD,
    ResolutionStage.NO_ARTIFACT: ErrorCode.RESOLVE_NO_ARTIFACT,
}


class ResolutionFailedError(ClonespaceError):
    """No qualifying upstream job, build, or snapshot could be found."""

    def __init__(
        self,
        stage: ResolutionStage,
        job: str,
        criterion: str = "",
        nearest: str | None = None,
    ) -> None:
        context: dict[str, Any] = {"job": job, "criterion": criterion}
        if nearest:
            context["nearest"] = nearest
        super().__init__(_STAGE_CODES[stage], context=context)
        self.stage = stage


class RestoreFailedError(ClonespaceError):
    """Restoring a snapshot failed; the destination is undefined."""

    def __init__(self, destination: str, cause: BaseException) -> None:
        super().__init__(
            ErrorCode.RESTORE_FAILED,
            context={"destination": destination, "detail": str(cause)},
            cause=cause,
        )


class ConfigError(ClonespaceError):
    """A configuration value could not be interpreted."""

    def __init__(self, key: str, detail: str) -> None:
        super().__init__(
            ErrorCode.CONFIG_INVALID,
            context={"key": key, "detail": detail},
        )
