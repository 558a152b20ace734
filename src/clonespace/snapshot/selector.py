"""Workspace path selection for snapshots.

Turns an include/exclude glob pair into the concrete set of files and
directories to archive.

Two modes:

- **Standard**: only matched files are selected. Directories reach the
  archive implicitly as parents of those files, so empty directories are lost.
- **Complete**: matched directories are selected too, so empty directories
  survive. Each immediate child of the root is scanned on its own. A child
  must first be *admitted* (every child by default, or a caller-supplied
  predicate); within an admitted child the scan never stops at an unmatched
  directory, so an excluded directory does not hide matched entries below it.
  Every directory on the way to a selected entry is preserved as well.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from clonespace.snapshot.patterns import FileSetMatcher, split_patterns

logger = logging.getLogger(__name__)

AdmitPredicate = Callable[[Path], bool]


@dataclass(frozen=True, slots=True)
class PathSelection:
    """Immutable set of absolute paths, all lexically inside ``root``."""

    root: Path
    """Absolute root the selection was computed against."""

    files: frozenset[Path] = field(default_factory=frozenset)
    """Selected files (including symlinks, which are never followed)."""

    directories: frozenset[Path] = field(default_factory=frozenset)
    """Selected directories, archived as explicit directory entries."""

    def __post_init__(self) -> None:
        for path in (*self.files, *self.directories):
            if path == self.root or not path.is_relative_to(self.root):
                raise ValueError(f"{path} is not inside {self.root}")

    def __len__(self) -> int:
        return len(self.files) + len(self.directories)

    def __contains__(self, path: object) -> bool:
        return path in self.files or path in self.directories

    @property
    def is_empty(self) -> bool:
        return not self.files and not self.directories

    def relative(self, path: Path) -> str:
        """``/``-separated path of ``path`` relative to the root."""
        return path.relative_to(self.root).as_posix()

    def entries(self) -> list[tuple[str, Path, bool]]:
        """``(relative_path, absolute_path, is_directory)`` sorted by relative path.

        Sorting puts every directory before its contents.
        """
        items = [(self.relative(p), p, False) for p in self.files]
        items += [(self.relative(p), p, True) for p in self.directories]
        return sorted(items, key=lambda item: item[0].split("/"))

    def relative_paths(self) -> set[str]:
        return {rel for rel, _, _ in self.entries()}


class PathSelector:
    """Resolves glob patterns against a workspace directory."""

    def resolve(
        self,
        root: Path | str,
        include: str | None,
        exclude: str | None = None,
        use_default_excludes: bool = True,
        complete: bool = False,
        admit: AdmitPredicate | None = None,
    ) -> PathSelection:
        """Compute the selection for one archive operation.

        Args:
            root: Workspace directory to scan
            include: Comma-separated Ant patterns; empty means ``**/*``
            exclude: Comma-separated Ant patterns to leave out
            use_default_excludes: Apply Ant's VCS/metadata deny-list
            complete: Also select directories (keeps empty directories)
            admit: Complete mode only; decides which immediate children of
                ``root`` are scanned at all (default: every child)

        Returns:
            The selection. An unreadable or missing root gives an empty one.

        Raises:
            InvalidPatternError: If a pattern has invalid syntax.
        """
        root_path = Path(os.path.abspath(root))
        matcher = FileSetMatcher(include, exclude, use_default_excludes)

        if complete:
            selection = self._resolve_complete(root_path, matcher, admit)
        else:
            files = frozenset(
                path
                for rel, path, is_dir in _scan(root_path, "", matcher)
                if not is_dir and matcher.is_included(rel)
            )
            selection = PathSelection(root=root_path, files=files)

        logger.debug(
            "Selected %d files and %d directories under %s (complete=%s, %r)",
            len(selection.files),
            len(selection.directories),
            root_path,
            complete,
            matcher,
        )
        return selection

    def _resolve_complete(
        self,
        root: Path,
        matcher: FileSetMatcher,
        admit: AdmitPredicate | None,
    ) -> PathSelection:
        files: set[Path] = set()
        directories: set[Path] = set()

        for child_rel, child, child_is_dir in _children(root):
            if admit is not None and not admit(child):
                logger.debug("Skipping %s: not admitted", child)
                continue

            candidates = [(child_rel, child, child_is_dir)]
            if child_is_dir and not matcher.prunes(child_rel):
                candidates.extend(_scan(child, child_rel + "/", matcher))

            for rel, path, is_dir in candidates:
                if not matcher.is_included(rel):
                    continue
                (directories if is_dir else files).add(path)
                # Keep the structure leading to this entry
                parent = path.parent
                while parent != root:
                    directories.add(parent)
                    parent = parent.parent

        return PathSelection(
            root=root,
            files=frozenset(files),
            directories=frozenset(directories),
        )

    def validate(
        self,
        root: Path | str,
        include: str | None,
        exclude: str | None = None,
        use_default_excludes: bool = True,
    ) -> str | None:
        """Check that every include item matches at least one file.

        Returns:
            ``None`` when all items match something, otherwise a message
            naming the first item that matches nothing.

        Raises:
            InvalidPatternError: If a pattern has invalid syntax.
        """
        root_path = Path(os.path.abspath(root))
        matcher = FileSetMatcher(include, exclude, use_default_excludes)
        files = [
            rel for rel, _, is_dir in _scan(root_path, "", matcher) if not is_dir
        ]

        for item in split_patterns(include) or ["**/*"]:
            item_matcher = FileSetMatcher(item, exclude, use_default_excludes)
            if any(item_matcher.is_included(rel) for rel in files):
                continue

            lowered = FileSetMatcher(item.lower(), exclude, use_default_excludes)
            for rel in files:
                if lowered.is_included(rel.lower()):
                    return f"'{item}' doesn't match anything, but '{rel}' does (case differs)"
            return f"'{item}' doesn't match anything"
        return None


def _children(directory: Path) -> list[tuple[str, Path, bool]]:
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        # Disconnected or unreadable workspaces count as empty
        logger.debug("Cannot list %s: %s", directory, e)
        return []
    return [
        (entry.name, Path(entry.path), entry.is_dir(follow_symlinks=False))
        for entry in entries
    ]


def _scan(
    directory: Path,
    prefix: str,
    matcher: FileSetMatcher,
) -> Iterator[tuple[str, Path, bool]]:
    """Yield ``(relative_path, path, is_dir)`` for everything below ``directory``."""
    for name, path, is_dir in _children(directory):
        rel = f"{prefix}{name}"
        yield rel, path, is_dir
        if is_dir and not matcher.prunes(rel):
            yield from _scan(path, rel + "/", matcher)
