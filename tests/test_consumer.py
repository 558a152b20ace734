"""Tests for WorkspaceCloner checkout and polling."""

from pathlib import Path

import pytest

from clonespace.consumer import CHANGELOG_FILENAME, EMPTY_CHANGELOG, WorkspaceCloner
from clonespace.foundation.errors import ResolutionFailedError, ResolutionStage, RestoreFailedError
from clonespace.jobs.local import LocalJob, LocalJobRegistry
from clonespace.lineage.criteria import Criterion, Outcome
from clonespace.producer import SnapshotPublisher
from clonespace.settings import ConsumerSettings, ProducerSettings
from clonespace.staleness import POINTER_FILENAME, PollChange


def _produce(job: LocalJob, outcome: Outcome = Outcome.SUCCESS, content: str | None = None) -> int:
    """Run one producer build of ``job`` and archive it."""
    build = job.new_build()
    (job.workspace_dir / "artifact.txt").write_text(content or f"from #{build.number}")
    build.finish(outcome)
    SnapshotPublisher(job.producer).publish(job.get_build(build.number))
    return build.number


@pytest.fixture
def upstream(registry: LocalJobRegistry) -> LocalJob:
    return registry.create_job("upstream", producer=ProducerSettings(format="zip"))


@pytest.fixture
def downstream(registry: LocalJobRegistry) -> LocalJob:
    return registry.create_job("downstream", consumer=ConsumerSettings("upstream"))


class TestCheckout:
    """Tests for WorkspaceCloner.checkout()."""

    def test_restores_records_and_writes_changelog(
        self, registry: LocalJobRegistry, upstream: LocalJob, downstream: LocalJob
    ) -> None:
        number = _produce(upstream)
        build = downstream.new_build()
        (downstream.workspace_dir / "stale.txt").write_text("old")

        result = WorkspaceCloner(downstream.consumer, registry).checkout(build)

        assert result.upstream_number == number
        assert (downstream.workspace_dir / "artifact.txt").read_text() == f"from #{number}"
        assert not (downstream.workspace_dir / "stale.txt").exists()
        assert (build.root_dir / POINTER_FILENAME).read_text().strip() == str(number)
        assert (build.root_dir / CHANGELOG_FILENAME).read_text() == EMPTY_CHANGELOG

    def test_copies_upstream_changelog(
        self, registry: LocalJobRegistry, upstream: LocalJob, downstream: LocalJob
    ) -> None:
        number = _produce(upstream)
        changelog = "<changelog><entry>fix</entry></changelog>"
        (upstream.get_build(number).root_dir / CHANGELOG_FILENAME).write_text(changelog)
        build = downstream.new_build()

        WorkspaceCloner(downstream.consumer, registry).checkout(build)

        assert (build.root_dir / CHANGELOG_FILENAME).read_text() == changelog

    def test_criterion_picks_older_build(
        self, registry: LocalJobRegistry, upstream: LocalJob, downstream: LocalJob
    ) -> None:
        good = _produce(upstream, Outcome.SUCCESS)
        _produce(upstream, Outcome.UNSTABLE)
        cloner = WorkspaceCloner(ConsumerSettings("upstream", Criterion.SUCCESSFUL), registry)

        result = cloner.checkout(downstream.new_build())

        assert result.upstream_number == good

    def test_upstream_name_uses_build_parameters(
        self, registry: LocalJobRegistry, upstream: LocalJob
    ) -> None:
        number = _produce(upstream)
        job = registry.create_job("param-consumer", consumer=ConsumerSettings("${PARENT}"))
        build = job.new_build(parameters={"PARENT": "upstream"})

        result = WorkspaceCloner(job.consumer, registry).checkout(build)

        assert result.upstream.job_name == "upstream"
        assert result.upstream_number == number

    def test_resolution_failure_fails_build(
        self, registry: LocalJobRegistry, downstream: LocalJob
    ) -> None:
        registry.create_job("upstream")
        build = downstream.new_build()

        with pytest.raises(ResolutionFailedError) as exc_info:
            WorkspaceCloner(downstream.consumer, registry).checkout(build)

        assert exc_info.value.stage is ResolutionStage.NO_QUALIFYING_BUILD
        assert downstream.get_build(build.number).outcome is Outcome.FAILURE

    def test_unknown_upstream_fails_build(self, registry: LocalJobRegistry) -> None:
        job = registry.create_job("orphan", consumer=ConsumerSettings("nowhere"))
        build = job.new_build()

        with pytest.raises(ResolutionFailedError) as exc_info:
            WorkspaceCloner(job.consumer, registry).checkout(build)

        assert exc_info.value.stage is ResolutionStage.JOB_NOT_FOUND
        assert job.get_build(build.number).outcome is Outcome.FAILURE

    def test_corrupt_snapshot_fails_build(
        self, registry: LocalJobRegistry, upstream: LocalJob, downstream: LocalJob
    ) -> None:
        number = _produce(upstream)
        upstream.get_build(number).snapshot.path.write_bytes(b"not a zip")
        build = downstream.new_build()

        with pytest.raises(RestoreFailedError):
            WorkspaceCloner(downstream.consumer, registry).checkout(build)

        assert downstream.get_build(build.number).outcome is Outcome.FAILURE
        assert not (build.root_dir / POINTER_FILENAME).exists()

    def test_vanished_snapshot_falls_back_to_older_build(
        self,
        registry: LocalJobRegistry,
        upstream: LocalJob,
        downstream: LocalJob,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """An artifact deleted between resolve and restore triggers a retry further back."""
        first = _produce(upstream, content="first")
        # Second build archived without retention so both snapshots exist
        second_build = upstream.new_build()
        (upstream.workspace_dir / "artifact.txt").write_text("second")
        second_build.finish(Outcome.SUCCESS)
        publisher = SnapshotPublisher(upstream.producer)
        monkeypatch.setattr(publisher.store, "retain", lambda build, criterion: None)
        publisher.publish(upstream.get_build(second_build.number))

        cloner = WorkspaceCloner(downstream.consumer, registry)
        original_restore = cloner.store.restore

        def restore_after_delete(artifact, destination):
            if artifact.build_number == second_build.number:
                artifact.path.unlink()
            return original_restore(artifact, destination)

        monkeypatch.setattr(cloner.store, "restore", restore_after_delete)
        result = cloner.checkout(downstream.new_build())

        assert result.upstream_number == first
        assert (downstream.workspace_dir / "artifact.txt").read_text() == "first"


class TestPoll:
    """Tests for WorkspaceCloner.poll()."""

    def test_no_changes_after_checkout(
        self, registry: LocalJobRegistry, upstream: LocalJob, downstream: LocalJob
    ) -> None:
        _produce(upstream)
        cloner = WorkspaceCloner(downstream.consumer, registry)
        cloner.checkout(downstream.new_build())

        result = cloner.poll(downstream)

        assert result.change is PollChange.NO_CHANGES
        assert result.recorded == result.current == 1

    def test_rebuild_needed_when_upstream_advances(
        self, registry: LocalJobRegistry, upstream: LocalJob, downstream: LocalJob
    ) -> None:
        _produce(upstream)
        cloner = WorkspaceCloner(downstream.consumer, registry)
        cloner.checkout(downstream.new_build())
        newer = _produce(upstream)

        result = cloner.poll(downstream)

        assert result.change is PollChange.REBUILD_NEEDED
        assert result.current == newer
        assert result.rebuild_needed

    def test_uses_nearest_recorded_pointer(
        self, registry: LocalJobRegistry, upstream: LocalJob, downstream: LocalJob
    ) -> None:
        """A consumer build that never checked out does not reset the baseline."""
        _produce(upstream)
        cloner = WorkspaceCloner(downstream.consumer, registry)
        cloner.checkout(downstream.new_build())
        downstream.new_build().finish(Outcome.ABORTED)

        assert cloner.poll(downstream).change is PollChange.NO_CHANGES

    def test_first_poll_without_checkout(
        self, registry: LocalJobRegistry, upstream: LocalJob, downstream: LocalJob
    ) -> None:
        _produce(upstream)
        result = WorkspaceCloner(downstream.consumer, registry).poll(downstream)
        assert result.change is PollChange.REBUILD_NEEDED
        assert result.recorded == 0

    def test_no_qualifying_upstream(
        self, registry: LocalJobRegistry, upstream: LocalJob, downstream: LocalJob
    ) -> None:
        _produce(upstream, Outcome.FAILURE)
        cloner = WorkspaceCloner(ConsumerSettings("upstream", Criterion.SUCCESSFUL), registry)

        result = cloner.poll(downstream)

        assert result.change is PollChange.UPSTREAM_MISSING
        assert not downstream.disabled

    def test_missing_upstream_job_disables_consumer(self, registry: LocalJobRegistry) -> None:
        job = registry.create_job("orphan", consumer=ConsumerSettings("deleted-job"))

        result = WorkspaceCloner(job.consumer, registry).poll(job)

        assert result.change is PollChange.UPSTREAM_MISSING
        assert registry.get_job("orphan").disabled

    def test_poll_ignores_builds_without_snapshot(
        self, registry: LocalJobRegistry, upstream: LocalJob, downstream: LocalJob
    ) -> None:
        """Only builds that still carry a snapshot count when polling."""
        _produce(upstream)
        cloner = WorkspaceCloner(downstream.consumer, registry)
        cloner.checkout(downstream.new_build())
        upstream.new_build().finish(Outcome.SUCCESS)

        assert cloner.poll(downstream).change is PollChange.NO_CHANGES


class TestValidateUpstream:
    """Tests for configuration-time upstream validation."""

    def test_valid(self, registry: LocalJobRegistry, upstream: LocalJob) -> None:
        assert WorkspaceCloner(ConsumerSettings("upstream"), registry).validate_upstream() is None

    def test_empty(self, registry: LocalJobRegistry) -> None:
        assert WorkspaceCloner(ConsumerSettings(""), registry).validate_upstream() is not None

    def test_suggests_nearest(self, registry: LocalJobRegistry, upstream: LocalJob) -> None:
        message = WorkspaceCloner(ConsumerSettings("upstrem"), registry).validate_upstream()
        assert message is not None
        assert "upstream" in message

    def test_not_a_producer(self, registry: LocalJobRegistry) -> None:
        registry.create_job("plain")
        message = WorkspaceCloner(ConsumerSettings("plain"), registry).validate_upstream()
        assert message is not None
        assert "does not archive" in message

    def test_parameterized_name_is_deferred(self, registry: LocalJobRegistry) -> None:
        assert WorkspaceCloner(ConsumerSettings("$PARENT"), registry).validate_upstream() is None

    def test_eligible_parents(self, registry: LocalJobRegistry, upstream: LocalJob, downstream: LocalJob) -> None:
        assert registry.eligible_parents() == ["upstream"]


def test_checkout_into_explicit_destination(
    registry: LocalJobRegistry, upstream: LocalJob, downstream: LocalJob, tmp_path: Path
) -> None:
    _produce(upstream)
    dest = tmp_path / "elsewhere"
    result = WorkspaceCloner(downstream.consumer, registry).checkout(downstream.new_build(), destination=dest)
    assert result.destination == dest
    assert (dest / "artifact.txt").exists()
