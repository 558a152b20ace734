"""Ant-style file patterns.

Supports the subset of Ant ``FileSet`` syntax that workspace globs use:

- ``*`` matches zero or more characters within one path segment
- ``?`` matches exactly one character within one path segment
- ``**`` matches zero or more whole path segments
- a trailing ``/`` is shorthand for ``/**``
- several patterns may be given as a comma-separated list

Matching is case-sensitive and always against ``/``-separated paths relative
to the scanned root.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from functools import lru_cache

from clonespace.foundation.errors import InvalidPatternError

DEFAULT_INCLUDE = "**/*"

# Ant's built-in default excludes (VCS metadata and editor droppings)
DEFAULT_EXCLUDES: tuple[str, ...] = (
    "**/*~",
    "**/#*#",
    "**/.#*",
    "**/%*%",
    "**/._*",
    "**/CVS",
    "**/CVS/**",
    "**/.cvsignore",
    "**/SCCS",
    "**/SCCS/**",
    "**/vssver.scc",
    "**/.svn",
    "**/.svn/**",
    "**/.DS_Store",
    "**/.git",
    "**/.git/**",
    "**/.gitattributes",
    "**/.gitignore",
    "**/.gitmodules",
    "**/.hg",
    "**/.hg/**",
    "**/.hgignore",
    "**/.hgsub",
    "**/.hgsubstate",
    "**/.hgtags",
    "**/.bzr",
    "**/.bzr/**",
    "**/.bzrignore",
)

_DRIVE_RE = re.compile(r"^[A-Za-z]:")


def split_patterns(value: str | None) -> list[str]:
    """Split a comma-separated pattern list, dropping empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def normalize_pattern(pattern: str) -> str:
    """Normalize separators and expand a trailing ``/`` to ``/**``."""
    normalized = pattern.strip().replace("\\", "/")
    if normalized.endswith("/"):
        normalized += "**"
    return normalized


def validate_pattern(pattern: str) -> None:
    """Check one pattern item for syntax that Ant cannot honour here.

    Raises:
        InvalidPatternError: If the pattern is absolute, climbs out of the
            root with ``..``, contains a NUL byte, or uses ``**`` as part of
            a longer segment.
    """
    normalized = normalize_pattern(pattern)
    if "\x00" in normalized:
        raise InvalidPatternError(pattern, "pattern contains a NUL byte")
    if normalized.startswith("/") or _DRIVE_RE.match(normalized):
        raise InvalidPatternError(pattern, "pattern must be relative to the workspace root")
    for segment in normalized.split("/"):
        if segment == "..":
            raise InvalidPatternError(pattern, "'..' would leave the workspace root")
        if "**" in segment and segment != "**":
            raise InvalidPatternError(pattern, "'**' must be a whole path segment")


@lru_cache(maxsize=1024)
def _segment_regex(segment: str) -> re.Pattern[str]:
    parts = []
    for char in segment:
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def _match_segments(pattern: tuple[str, ...], path: tuple[str, ...]) -> bool:
    if not pattern:
        return not path
    head = pattern[0]
    if head == "**":
        rest = pattern[1:]
        while rest and rest[0] == "**":
            rest = rest[1:]
        if not rest:
            return True
        return any(_match_segments(rest, path[i:]) for i in range(len(path) + 1))
    if not path:
        return False
    if not _segment_regex(head).fullmatch(path[0]):
        return False
    return _match_segments(pattern[1:], path[1:])


@dataclass(frozen=True, slots=True)
class AntPattern:
    """One compiled Ant pattern."""

    text: str
    segments: tuple[str, ...]

    @classmethod
    def compile(cls, pattern: str) -> AntPattern:
        validate_pattern(pattern)
        normalized = normalize_pattern(pattern)
        segments = tuple(s for s in normalized.split("/") if s and s != ".")
        return cls(text=pattern, segments=segments or ("**",))

    def matches(self, relative_path: str) -> bool:
        """Match a ``/``-separated path relative to the scan root."""
        path = tuple(s for s in relative_path.split("/") if s)
        return _match_segments(self.segments, path)

    def covers_subtree(self, relative_dir: str) -> bool:
        """Whether every path strictly below ``relative_dir`` matches.

        True for patterns of the form ``<prefix>/**`` whose prefix matches the
        directory, which lets scanners skip the directory entirely.
        """
        if len(self.segments) < 2 or self.segments[-1] != "**":
            return False
        prefix = AntPattern(text=self.text, segments=self.segments[:-1])
        return prefix.matches(relative_dir)


class FileSetMatcher:
    """Include/exclude pattern pair, as in an Ant ``FileSet``.

    Example:
        >>> matcher = FileSetMatcher("src/**/*.py", "src/vendor/**")
        >>> matcher.is_included("src/app/main.py")
        True
        >>> matcher.is_included("src/vendor/six.py")
        False
    """

    def __init__(
        self,
        includes: str | Iterable[str] | None,
        excludes: str | Iterable[str] | None = None,
        use_default_excludes: bool = True,
    ) -> None:
        include_items = _as_items(includes) or [DEFAULT_INCLUDE]
        exclude_items = _as_items(excludes)
        if use_default_excludes:
            exclude_items = [*exclude_items, *DEFAULT_EXCLUDES]

        self.includes = tuple(AntPattern.compile(p) for p in include_items)
        self.excludes = tuple(AntPattern.compile(p) for p in exclude_items)
        self.use_default_excludes = use_default_excludes

    def is_included(self, relative_path: str) -> bool:
        if not any(p.matches(relative_path) for p in self.includes):
            return False
        return not self.is_excluded(relative_path)

    def is_excluded(self, relative_path: str) -> bool:
        return any(p.matches(relative_path) for p in self.excludes)

    def prunes(self, relative_dir: str) -> bool:
        """Whether nothing below ``relative_dir`` can ever be included."""
        return any(p.covers_subtree(relative_dir) for p in self.excludes)

    def __repr__(self) -> str:
        return (
            f"FileSetMatcher(includes={[p.text for p in self.includes]!r}, "
            f"excludes={len(self.excludes)} patterns, "
            f"default_excludes={self.use_default_excludes})"
        )


def _as_items(patterns: str | Iterable[str] | None) -> list[str]:
    if patterns is None:
        return []
    if isinstance(patterns, str):
        return split_patterns(patterns)
    items: list[str] = []
    for pattern in patterns:
        items.extend(split_patterns(pattern))
    return items
