"""Tests for the directory-backed job registry."""

from pathlib import Path

import pytest
import yaml

from clonespace.jobs.local import LocalJobRegistry
from clonespace.jobs.protocol import Build, Job, JobRegistry
from clonespace.lineage.criteria import Criterion, Outcome
from clonespace.settings import ConsumerSettings, ProducerSettings
from clonespace.snapshot.formats import ArchiveFormat, SnapshotArtifact


class TestRegistry:
    """Tests for LocalJobRegistry."""

    def test_satisfies_protocols(self, registry: LocalJobRegistry) -> None:
        job = registry.create_job("app")
        assert isinstance(registry, JobRegistry)
        assert isinstance(job, Job)
        assert isinstance(job.new_build(), Build)

    def test_create_and_get(self, registry: LocalJobRegistry) -> None:
        registry.create_job("app", producer=ProducerSettings(include_glob="dist/**"))
        job = registry.get_job("app")
        assert job is not None
        assert job.producer is not None
        assert job.producer.include_glob == "dist/**"
        assert job.consumer is None

    def test_unknown_job(self, registry: LocalJobRegistry) -> None:
        assert registry.get_job("missing") is None
        assert registry.get_job("../escape") is None

    @pytest.mark.parametrize("name", ["", "../x", "a/b", ".hidden"])
    def test_invalid_names(self, registry: LocalJobRegistry, name: str) -> None:
        with pytest.raises(ValueError):
            registry.create_job(name)

    def test_find_nearest(self, registry: LocalJobRegistry) -> None:
        registry.create_job("frontend")
        registry.create_job("backend")
        assert registry.find_nearest("frontnd") == "frontend"

    def test_find_nearest_without_jobs(self, registry: LocalJobRegistry) -> None:
        assert registry.find_nearest("anything") is None

    def test_jobs_sorted(self, registry: LocalJobRegistry) -> None:
        for name in ("b", "a", "c"):
            registry.create_job(name)
        assert [job.name for job in registry.jobs()] == ["a", "b", "c"]

    def test_settings_round_trip_through_yaml(self, registry: LocalJobRegistry) -> None:
        registry.create_job(
            "consumer",
            consumer=ConsumerSettings("upstream-${BRANCH}", Criterion.NOT_FAILED),
        )
        data = yaml.safe_load((registry.jobs_dir / "consumer" / "job.yaml").read_text())
        assert data["consumer"] == {"upstream_job_name": "upstream-${BRANCH}", "criterion": "Not Failed"}
        assert registry.get_job("consumer").consumer.criterion is Criterion.NOT_FAILED

    def test_blank_values_in_job_yaml_use_defaults(self, registry: LocalJobRegistry) -> None:
        registry.create_job("app")
        (registry.jobs_dir / "app" / "job.yaml").write_text(
            "producer:\n  include_glob:\n  format:\n  criterion:\n  complete_mode:\n"
            "consumer:\n  upstream_job_name:\n"
        )

        job = registry.get_job("app")

        assert job.producer == ProducerSettings()
        assert job.producer.format is ArchiveFormat.TAR_GZ
        assert job.consumer.upstream_job_name == ""
        assert registry.eligible_parents() == ["app"]


class TestBuilds:
    """Tests for LocalJob and LocalBuild."""

    def test_numbers_increase(self, registry: LocalJobRegistry) -> None:
        job = registry.create_job("app")
        numbers = [job.new_build().number for _ in range(3)]
        assert numbers == [1, 2, 3]
        assert job.last_build().number == 3

    def test_numbers_not_reused_after_deletion(self, registry: LocalJobRegistry) -> None:
        import shutil

        job = registry.create_job("app")
        job.new_build()
        second = job.new_build()
        shutil.rmtree(second.root_dir)
        assert job.new_build().number == 3

    def test_new_build_is_running(self, registry: LocalJobRegistry) -> None:
        build = registry.create_job("app").new_build()
        assert build.building
        assert build.outcome is None

    def test_finish(self, registry: LocalJobRegistry) -> None:
        job = registry.create_job("app")
        job.new_build().finish(Outcome.UNSTABLE)
        build = job.last_build()
        assert not build.building
        assert build.outcome is Outcome.UNSTABLE

    def test_previous_build_skips_gaps(self, registry: LocalJobRegistry) -> None:
        import shutil

        job = registry.create_job("app")
        first = job.new_build()
        second = job.new_build()
        third = job.new_build()
        shutil.rmtree(second.root_dir)

        previous = third.previous_build()
        assert previous == first
        assert previous.previous_build() is None

    def test_history_walk_lists_builds_once(
        self, registry: LocalJobRegistry, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from clonespace.jobs.local import LocalJob
        from clonespace.lineage.history import BuildHistory

        job = registry.create_job("app")
        for _ in range(5):
            job.new_build().finish(Outcome.SUCCESS)

        calls = []
        original = LocalJob.build_numbers

        def counting(self):
            calls.append(1)
            return original(self)

        monkeypatch.setattr(LocalJob, "build_numbers", counting)
        numbers = [build.number for build in BuildHistory(job.last_build())]

        assert numbers == [5, 4, 3, 2, 1]
        assert len(calls) == 1

    def test_environment(self, registry: LocalJobRegistry) -> None:
        job = registry.create_job("app")
        build = job.new_build(parameters={"BRANCH": "main"}, environment={"CI": "1", "BRANCH": "env"})
        env = build.environment()
        assert env["BUILD_NUMBER"] == "1"
        assert env["JOB_NAME"] == "app"
        assert env["WORKSPACE"] == str(job.workspace_dir)
        assert env["CI"] == "1"
        assert env["BRANCH"] == "main"
        assert build.parameters() == {"BRANCH": "main"}

    def test_snapshot_association_persists(self, registry: LocalJobRegistry) -> None:
        job = registry.create_job("app")
        build = job.new_build()
        artifact = SnapshotArtifact(build.number, ArchiveFormat.TAR_GZ, build.root_dir / "workspace.tar.gz")

        build.attach_snapshot(artifact)
        assert job.get_build(build.number).snapshot == artifact

        build.detach_snapshot()
        assert job.get_build(build.number).snapshot is None

    def test_metadata_is_yaml(self, registry: LocalJobRegistry) -> None:
        build = registry.create_job("app").new_build(parameters={"A": "1"})
        build.finish(Outcome.SUCCESS)
        data = yaml.safe_load(build.metadata_path.read_text())
        assert data["number"] == 1
        assert data["outcome"] == "SUCCESS"
        assert data["building"] is False
        assert data["parameters"] == {"A": "1"}
        assert not list(build.root_dir.glob("*.tmp"))

    def test_disable(self, registry: LocalJobRegistry) -> None:
        job = registry.create_job("app")
        job.disable()
        assert registry.get_job("app").disabled

    def test_get_build_missing(self, registry: LocalJobRegistry, tmp_path: Path) -> None:
        assert registry.create_job("app").get_build(99) is None
