"""Pytest fixtures for clonespace tests."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from clonespace.foundation.config import reset_config
from clonespace.jobs.local import LocalJobRegistry
from clonespace.lineage.criteria import Outcome
from clonespace.snapshot.formats import SnapshotArtifact


class FakeBuild:
    """In-memory build for exercising lineage and store logic."""

    def __init__(
        self,
        number: int,
        outcome: Outcome | None = Outcome.SUCCESS,
        previous: FakeBuild | None = None,
        root_dir: Path | None = None,
        workspace: Path | None = None,
        building: bool = False,
        parameters: dict[str, str] | None = None,
        environment: dict[str, str] | None = None,
    ) -> None:
        self.number = number
        self.outcome = outcome
        self.building = building
        self._previous = previous
        self.root_dir = root_dir or Path(f"/nonexistent/builds/{number}")
        self.workspace = workspace
        self.snapshot: SnapshotArtifact | None = None
        self._parameters = dict(parameters or {})
        self._environment = dict(environment or {})

    @property
    def display_name(self) -> str:
        return f"fake #{self.number}"

    def previous_build(self) -> FakeBuild | None:
        return self._previous

    def attach_snapshot(self, artifact: SnapshotArtifact) -> None:
        self.snapshot = artifact

    def detach_snapshot(self) -> None:
        self.snapshot = None

    def parameters(self) -> dict[str, str]:
        return dict(self._parameters)

    def environment(self) -> dict[str, str]:
        return {"BUILD_NUMBER": str(self.number), **self._environment, **self._parameters}

    def set_outcome(self, outcome: Outcome) -> None:
        self.outcome = outcome


def make_history(
    outcomes: list[Outcome | None], base: Path | None = None
) -> list[FakeBuild]:
    """Builds numbered 1..n with the given outcomes, returned oldest first."""
    builds: list[FakeBuild] = []
    previous = None
    for number, outcome in enumerate(outcomes, start=1):
        root = base / "builds" / str(number) if base else None
        if root is not None:
            root.mkdir(parents=True, exist_ok=True)
        build = FakeBuild(number, outcome, previous=previous, root_dir=root)
        builds.append(build)
        previous = build
    return builds


@pytest.fixture
def history_factory(tmp_path: Path) -> Callable[[list[Outcome | None]], list[FakeBuild]]:
    """Factory for fake histories whose builds have real root directories."""
    return lambda outcomes: make_history(outcomes, tmp_path)


@pytest.fixture
def registry(tmp_path: Path) -> LocalJobRegistry:
    """Empty local job registry in a temp directory."""
    return LocalJobRegistry(tmp_path / "home")


@pytest.fixture
def workspace_tree(tmp_path: Path) -> Path:
    """A small workspace with nested files, an empty dir and VCS metadata.

    Layout::

        ws/
          test.txt
          level1_1/level2_1/          (empty)
          src/main.py
          src/pkg/util.py
          build/out.bin
          .git/config
    """
    root = tmp_path / "ws"
    (root / "level1_1" / "level2_1").mkdir(parents=True)
    (root / "src" / "pkg").mkdir(parents=True)
    (root / "build").mkdir()
    (root / ".git").mkdir()
    (root / "test.txt").write_text("hello\n")
    (root / "src" / "main.py").write_text("print('main')\n")
    (root / "src" / "pkg" / "util.py").write_text("X = 1\n")
    (root / "build" / "out.bin").write_bytes(b"\x00\x01\x02")
    (root / ".git" / "config").write_text("[core]\n")
    return root


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Keep tests away from real config files, CLONESPACE_* variables and
    logging changes made by the CLI."""
    for key in list(os.environ):
        if key.startswith("CLONESPACE_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("HOME", str(tmp_path / "user-home"))
    monkeypatch.chdir(tmp_path)
    reset_config()

    root_logger = logging.getLogger()
    handlers, level = list(root_logger.handlers), root_logger.level
    yield
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)
    reset_config()
