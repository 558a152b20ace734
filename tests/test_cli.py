"""Tests for the clonespace CLI commands."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from clonespace.interface.cli.main import main
from clonespace.jobs.local import LocalJobRegistry
from clonespace.lineage.criteria import Outcome
from clonespace.staleness import POINTER_FILENAME


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def home(tmp_path: Path) -> Path:
    return tmp_path / "home"


@pytest.fixture
def invoke(runner: CliRunner, home: Path):
    """Run a command against the temp registry with --json output."""

    def _invoke(*args: str, expect: int = 0):
        result = runner.invoke(main, ["--home", str(home), "--json", *args])
        assert result.exit_code == expect, result.output
        return result

    return _invoke


def _payload(result) -> object:
    return json.loads(result.stdout)


@pytest.fixture
def produced(invoke, home: Path) -> Path:
    """An archiving job 'app' with one successful, archived build."""
    invoke("configure", "app", "--archives", "--format", "zip")
    workspace = home / "jobs" / "app" / "workspace"
    (workspace / "dist").mkdir(parents=True)
    (workspace / "dist" / "app.whl").write_text("v1")
    invoke("new-build", "app")
    invoke("archive", "app")
    return workspace


class TestConfigure:
    """Tests for `clonespace configure`."""

    def test_producer_settings(self, invoke) -> None:
        data = _payload(invoke("configure", "app", "--include", "dist/**", "--format", "tgz", "--complete"))
        assert data["producer"]["include_glob"] == "dist/**"
        assert data["producer"]["format"] == "tar.gz"
        assert data["producer"]["complete_mode"] is True
        assert data["consumer"] is None

    def test_keeps_existing_settings(self, invoke) -> None:
        invoke("configure", "app", "--include", "dist/**")
        data = _payload(invoke("configure", "app", "--no-default-excludes"))
        assert data["producer"]["include_glob"] == "dist/**"
        assert data["producer"]["suppress_default_excludes"] is True

    def test_consumer_settings(self, invoke) -> None:
        invoke("configure", "app", "--archives")
        data = _payload(invoke("configure", "tests", "--upstream", "app", "--criterion", "Successful"))
        assert data["consumer"] == {"upstream_job_name": "app", "criterion": "Successful"}

    def test_unspaced_criterion(self, invoke) -> None:
        invoke("configure", "app", "--archives")
        data = _payload(invoke("configure", "tests", "--upstream", "app", "--criterion", "NotFailed"))
        assert data["consumer"]["criterion"] == "Not Failed"

    def test_invalid_job_name(self, runner: CliRunner, home: Path) -> None:
        result = runner.invoke(main, ["--home", str(home), "configure", "../escape"])
        assert result.exit_code == 2


class TestBuildsAndArchive:
    """Tests for `new-build`, `archive` and `history`."""

    def test_new_build_creates_job(self, invoke, home: Path) -> None:
        data = _payload(invoke("new-build", "app", "--outcome", "unstable", "--param", "BRANCH=main"))
        assert data == {"job": "app", "number": 1, "building": False, "outcome": "UNSTABLE"}
        build = LocalJobRegistry(home).get_job("app").get_build(1)
        assert build.parameters() == {"BRANCH": "main"}

    def test_running_build(self, invoke) -> None:
        data = _payload(invoke("new-build", "app", "--running"))
        assert data["building"] is True
        assert data["outcome"] is None

    def test_bad_param(self, runner: CliRunner, home: Path) -> None:
        result = runner.invoke(main, ["--home", str(home), "new-build", "app", "--param", "novalue"])
        assert result.exit_code == 2

    def test_archive(self, invoke, home: Path, produced: Path) -> None:
        build = LocalJobRegistry(home).get_job("app").get_build(1)
        assert build.snapshot is not None
        assert build.snapshot.path.name == "workspace.zip"
        assert build.snapshot.exists()

    def test_archive_retention(self, invoke, home: Path, produced: Path) -> None:
        invoke("new-build", "app")
        data = _payload(invoke("archive", "app"))
        assert data["status"] == "archived"
        assert data["deleted_from"] == 1

        rows = _payload(invoke("history", "app"))
        assert [(row["number"], row["snapshot"]) for row in rows] == [(2, "workspace.zip"), (1, None)]

    def test_archive_criteria_not_met(self, invoke) -> None:
        invoke("configure", "app", "--producer-criterion", "Successful")
        invoke("new-build", "app", "--outcome", "failure")
        data = _payload(invoke("archive", "app"))
        assert data["status"] == "criteria-not-met"
        assert data["artifact"] is None

    def test_archive_unknown_job(self, invoke) -> None:
        invoke("archive", "nope", expect=1)

    def test_jobs(self, invoke, produced: Path) -> None:
        invoke("configure", "tests", "--upstream", "app")
        rows = _payload(invoke("jobs"))
        assert [(row["name"], row["eligible_parent"], row["upstream"]) for row in rows] == [
            ("app", True, None),
            ("tests", False, "app"),
        ]


class TestCloneFlow:
    """End-to-end producer/consumer flow through the CLI."""

    def test_checkout_and_poll(self, invoke, home: Path, produced: Path) -> None:
        invoke("configure", "tests", "--upstream", "app")

        data = _payload(invoke("checkout", "tests"))
        assert data["upstream"] == "app"
        assert data["upstream_build"] == 1
        tests_job = LocalJobRegistry(home).get_job("tests")
        assert (tests_job.workspace_dir / "dist" / "app.whl").read_text() == "v1"
        assert (tests_job.get_build(1).root_dir / POINTER_FILENAME).read_text().strip() == "1"
        assert tests_job.get_build(1).outcome is Outcome.SUCCESS

        assert _payload(invoke("poll", "tests"))["change"] == "no-changes"

        (produced / "dist" / "app.whl").write_text("v2")
        invoke("new-build", "app")
        invoke("archive", "app")

        poll = _payload(invoke("poll", "tests"))
        assert poll["change"] == "rebuild-needed"
        assert (poll["recorded"], poll["current"]) == (1, 2)

    def test_resolve(self, invoke, produced: Path) -> None:
        invoke("new-build", "app", "--outcome", "unstable")
        invoke("archive", "app", "--criterion", "Any")

        assert _payload(invoke("resolve", "app"))["build"] == 2
        # The unstable build's archive replaced the successful one's
        invoke("resolve", "app", "--criterion", "Successful", expect=1)

    def test_resolve_unknown_job(self, invoke, produced: Path) -> None:
        result = invoke("resolve", "ap", expect=1)
        assert "CS-3001" in result.output

    def test_checkout_failure_marks_build_failed(self, invoke, home: Path) -> None:
        invoke("configure", "app", "--archives")
        invoke("configure", "tests", "--upstream", "app")

        result = invoke("checkout", "tests", expect=1)

        assert "CS-3002" in result.output
        build = LocalJobRegistry(home).get_job("tests").get_build(1)
        assert build.outcome is Outcome.FAILURE
        assert not build.building

    def test_checkout_with_upstream_override(self, invoke, home: Path, produced: Path) -> None:
        invoke("new-build", "other")
        data = _payload(invoke("checkout", "other", "--upstream", "app"))
        assert data["build"] == 2
        assert data["upstream_build"] == 1

    def test_checkout_without_upstream(self, invoke) -> None:
        invoke("new-build", "lonely")
        invoke("checkout", "lonely", expect=1)

    def test_poll_missing_upstream_disables_job(self, invoke, home: Path, produced: Path) -> None:
        invoke("configure", "tests", "--upstream", "app")
        invoke("configure", "tests", "--upstream", "gone")

        assert _payload(invoke("poll", "tests"))["change"] == "upstream-missing"
        assert LocalJobRegistry(home).get_job("tests").disabled

    def test_reenable_after_upstream_returns(self, invoke, home: Path, produced: Path) -> None:
        invoke("configure", "tests", "--upstream", "gone")
        invoke("poll", "tests")

        data = _payload(invoke("configure", "tests", "--upstream", "app", "--enable"))

        assert data["disabled"] is False
        assert not LocalJobRegistry(home).get_job("tests").disabled
        assert _payload(invoke("poll", "tests"))["change"] == "rebuild-needed"
