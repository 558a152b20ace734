"""Main CLI entry point.

    clonespace new-build app --outcome success
    clonespace archive app --include "dist/**" --format zip
    clonespace checkout tests --upstream app --criterion "Not Failed"
    clonespace poll tests

Every command works against the local job registry under ``--home``
(default: ``home`` from the config file, then ``~/.clonespace``).
"""

import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from clonespace.consumer import WorkspaceCloner
from clonespace.foundation.config import ClonespaceConfig, load_config
from clonespace.foundation.errors import ClonespaceError
from clonespace.foundation.logging import configure_logging
from clonespace.jobs.local import LocalJob, LocalJobRegistry
from clonespace.lineage.criteria import Criterion, Outcome
from clonespace.lineage.resolver import LineageResolver
from clonespace.producer import SnapshotPublisher
from clonespace.settings import ConsumerSettings, ProducerSettings
from clonespace.staleness import PollChange, StalenessTracker

console = Console()

_OUTCOME_CHOICE = click.Choice([o.name.lower() for o in Outcome], case_sensitive=False)
_CRITERION_CHOICE = click.Choice(
    list(dict.fromkeys(
        label for c in Criterion for label in (c.value, c.name.lower(), c.value.replace(" ", ""))
    )),
    case_sensitive=False,
)
_FORMAT_CHOICE = click.Choice(["zip", "tar", "tar.gz", "tgz"], case_sensitive=False)

_OUTCOME_STYLES = {
    Outcome.SUCCESS: "green",
    Outcome.UNSTABLE: "yellow",
    Outcome.FAILURE: "red",
    Outcome.ABORTED: "dim",
    Outcome.NOT_BUILT: "dim",
}


def cli_entrypoint() -> None:
    """Wrapped entrypoint with global error handling.

    Catches ClonespaceError and displays it nicely instead of a traceback.
    Called from pyproject.toml [project.scripts].
    """
    try:
        main(standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        console.print("\n  [dim]Interrupted[/]")
        sys.exit(130)
    except ClonespaceError as e:
        from clonespace.interface.cli.error_handler import handle_error

        handle_error(e, json_output="--json" in sys.argv)


# ─────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────


def _parse_pairs(pairs: tuple[str, ...], option: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint=option)
        result[key] = value
    return result


def _registry(ctx: click.Context) -> LocalJobRegistry:
    return ctx.obj["registry"]


def _config(ctx: click.Context) -> ClonespaceConfig:
    return ctx.obj["config"]


def _require_job(ctx: click.Context, name: str) -> LocalJob:
    registry = _registry(ctx)
    job = registry.get_job(name)
    if job is None:
        nearest = registry.find_nearest(name)
        hint = f" Did you mean '{nearest}'?" if nearest else ""
        raise click.ClickException(f"No such job '{name}'.{hint}")
    return job


def _emit_json(data: object) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _fail(ctx: click.Context, error: ClonespaceError) -> NoReturn:
    from clonespace.interface.cli.error_handler import handle_error

    handle_error(error, json_output=ctx.obj["json"])


# ─────────────────────────────────────────────────────────────────
# Group
# ─────────────────────────────────────────────────────────────────


@click.group()
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="CLONESPACE_HOME",
    help="Registry directory (jobs, builds, logs)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Explicit config file",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--json", "json_output", is_flag=True, help="Machine-readable output")
@click.version_option(package_name="clonespace")
@click.pass_context
def main(
    ctx: click.Context,
    home: Path | None,
    config_path: Path | None,
    debug: bool,
    json_output: bool,
) -> None:
    """Clone workspaces between jobs by archiving and restoring snapshots."""
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except ClonespaceError as e:
        from clonespace.interface.cli.error_handler import handle_error

        handle_error(e, json_output=json_output)
    if home is not None:
        config = replace(config, home=home)

    configure_logging(debug=debug, config_debug=config.debug, log_dir=config.log_dir)
    ctx.obj["config"] = config
    ctx.obj["registry"] = LocalJobRegistry(config.home)
    ctx.obj["json"] = json_output


# ─────────────────────────────────────────────────────────────────
# Registry commands
# ─────────────────────────────────────────────────────────────────


@main.command("configure")
@click.argument("job_name")
@click.option("--include", help="Producer include patterns (comma-separated)")
@click.option("--exclude", help="Producer exclude patterns (comma-separated)")
@click.option("--producer-criterion", type=_CRITERION_CHOICE, help="Minimum outcome to archive")
@click.option("--format", "fmt", type=_FORMAT_CHOICE, help="Archive format")
@click.option(
    "--default-excludes/--no-default-excludes",
    default=None,
    help="Skip (or archive) VCS metadata such as .git",
)
@click.option("--complete/--standard", default=None, help="Preserve empty directories")
@click.option("--archives", is_flag=True, help="Publish snapshots even with all-default settings")
@click.option("--upstream", help="Consumer: job to clone from (may use $PARAMS)")
@click.option("--criterion", type=_CRITERION_CHOICE, help="Consumer: minimum upstream outcome")
@click.option("--enable/--disable", "enabled", default=None, help="Re-enable or disable the job")
@click.pass_context
def configure(
    ctx: click.Context,
    job_name: str,
    include: str | None,
    exclude: str | None,
    producer_criterion: str | None,
    fmt: str | None,
    default_excludes: bool | None,
    complete: bool | None,
    archives: bool,
    upstream: str | None,
    criterion: str | None,
    enabled: bool | None,
) -> None:
    """Create JOB or update its producer/consumer settings."""
    registry = _registry(ctx)
    existing = registry.get_job(job_name)

    producer = existing.producer if existing else None
    producer_opts = {
        "include_glob": include,
        "exclude_glob": exclude,
        "criterion": producer_criterion,
        "format": fmt,
        "suppress_default_excludes": None if default_excludes is None else not default_excludes,
        "complete_mode": complete,
    }
    given = {k: v for k, v in producer_opts.items() if v is not None}
    if given or (archives and producer is None):
        base = producer or _config(ctx).producer
        producer = replace(base, **given)

    consumer = existing.consumer if existing else None
    if upstream is not None or criterion is not None:
        consumer = ConsumerSettings(
            upstream_job_name=upstream if upstream is not None else (consumer.upstream_job_name if consumer else ""),
            criterion=criterion or (consumer.criterion if consumer else _config(ctx).consumer.criterion),
        )

    try:
        job = registry.create_job(job_name, producer=producer, consumer=consumer)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="JOB_NAME") from e
    if enabled is True:
        job.enable()
    elif enabled is False:
        job.disable()

    if consumer is not None:
        problem = WorkspaceCloner(consumer, registry).validate_upstream()
        if problem:
            console.print(f"[yellow]Warning:[/] {problem}")

    if ctx.obj["json"]:
        _emit_json({
            "job": job.name,
            "producer": job.producer.to_dict() if job.producer else None,
            "consumer": job.consumer.to_dict() if job.consumer else None,
            "disabled": job.disabled,
        })
        return
    console.print(f"[green]✓[/] Configured [bold]{job.name}[/] ({job.job_dir})")


@main.command("jobs")
@click.pass_context
def list_jobs(ctx: click.Context) -> None:
    """List jobs; eligible parents are those that archive their workspace."""
    registry = _registry(ctx)
    jobs = registry.jobs()

    if ctx.obj["json"]:
        _emit_json([
            {
                "name": job.name,
                "eligible_parent": job.producer is not None,
                "upstream": job.consumer.upstream_job_name if job.consumer else None,
                "disabled": job.disabled,
                "last_build": (last.number if (last := job.last_build()) else None),
            }
            for job in jobs
        ])
        return

    if not jobs:
        console.print(f"[dim]No jobs under {registry.jobs_dir}[/]")
        return

    table = Table(title="Jobs")
    table.add_column("Name", style="cyan")
    table.add_column("Archives", justify="center")
    table.add_column("Clones from")
    table.add_column("Last build", justify="right")
    table.add_column("State")
    for job in jobs:
        last = job.last_build()
        table.add_row(
            job.name,
            "✓" if job.producer else "",
            job.consumer.upstream_job_name if job.consumer else "",
            f"#{last.number}" if last else "-",
            "[red]disabled[/]" if job.disabled else "",
        )
    console.print(table)


@main.command("history")
@click.argument("job_name")
@click.pass_context
def history(ctx: click.Context, job_name: str) -> None:
    """Show JOB's builds, newest first."""
    job = _require_job(ctx, job_name)
    tracker = StalenessTracker()
    rows = []
    for build in job.builds():
        snapshot = build.snapshot
        rows.append({
            "number": build.number,
            "outcome": build.outcome.name if build.outcome is not None else None,
            "building": build.building,
            "snapshot": snapshot.path.name if snapshot else None,
            "snapshot_present": snapshot.exists() if snapshot else False,
            "cloned_from": tracker.read(build) if tracker.has_pointer(build) else None,
        })

    if ctx.obj["json"]:
        _emit_json(rows)
        return

    table = Table(title=f"History of {job.name}")
    table.add_column("#", justify="right")
    table.add_column("Outcome")
    table.add_column("Snapshot")
    table.add_column("Cloned from", justify="right")
    for build, row in zip(job.builds(), rows):
        if build.building:
            outcome = "[blue]building[/]"
        elif build.outcome is None:
            outcome = "[dim]unknown[/]"
        else:
            outcome = f"[{_OUTCOME_STYLES[build.outcome]}]{build.outcome.name}[/]"
        snapshot = row["snapshot"] or ""
        if snapshot and not row["snapshot_present"]:
            snapshot += " [red](missing)[/]"
        cloned = row["cloned_from"]
        table.add_row(str(build.number), outcome, snapshot, f"#{cloned}" if cloned else "")
    console.print(table)


@main.command("new-build")
@click.argument("job_name")
@click.option("--outcome", type=_OUTCOME_CHOICE, default="success", show_default=True)
@click.option("--running", is_flag=True, help="Leave the build running")
@click.option("--param", "params", multiple=True, metavar="K=V", help="Build parameter")
@click.option("--env", "env", multiple=True, metavar="K=V", help="Environment variable")
@click.pass_context
def new_build(
    ctx: click.Context,
    job_name: str,
    outcome: str,
    running: bool,
    params: tuple[str, ...],
    env: tuple[str, ...],
) -> None:
    """Record a build of JOB (creating the job if needed)."""
    registry = _registry(ctx)
    job = registry.get_job(job_name)
    if job is None:
        try:
            job = registry.create_job(job_name)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="JOB_NAME") from e

    build = job.new_build(
        parameters=_parse_pairs(params, "--param"),
        environment=_parse_pairs(env, "--env"),
    )
    if not running:
        build.finish(Outcome.parse(outcome))

    if ctx.obj["json"]:
        _emit_json({"job": job.name, "number": build.number, "building": build.building,
                    "outcome": build.outcome.name if build.outcome is not None else None})
        return
    console.print(f"[green]✓[/] {build.display_name} recorded")


# ─────────────────────────────────────────────────────────────────
# Producer
# ─────────────────────────────────────────────────────────────────


@main.command("archive")
@click.argument("job_name")
@click.option("--build", "build_number", type=int, help="Build to archive (default: last)")
@click.option("--include", help="Include patterns (comma-separated)")
@click.option("--exclude", help="Exclude patterns (comma-separated)")
@click.option("--criterion", type=_CRITERION_CHOICE, help="Minimum outcome to archive")
@click.option("--format", "fmt", type=_FORMAT_CHOICE, help="Archive format")
@click.option(
    "--default-excludes/--no-default-excludes",
    default=None,
    help="Skip (or archive) VCS metadata such as .git",
)
@click.option("--complete/--standard", default=None, help="Preserve empty directories")
@click.pass_context
def archive(
    ctx: click.Context,
    job_name: str,
    build_number: int | None,
    include: str | None,
    exclude: str | None,
    criterion: str | None,
    fmt: str | None,
    default_excludes: bool | None,
    complete: bool | None,
) -> None:
    """Archive JOB's workspace as the snapshot of a finished build."""
    job = _require_job(ctx, job_name)
    build = job.get_build(build_number) if build_number else job.last_build()
    if build is None:
        raise click.ClickException(f"{job.name} has no build {f'#{build_number}' if build_number else 'yet'}")

    overrides = {
        "include_glob": include,
        "exclude_glob": exclude,
        "criterion": criterion,
        "format": fmt,
        "suppress_default_excludes": None if default_excludes is None else not default_excludes,
        "complete_mode": complete,
    }
    settings: ProducerSettings = job.producer or _config(ctx).producer
    settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})

    result = SnapshotPublisher(settings).publish(build)

    if ctx.obj["json"]:
        _emit_json({
            "status": result.status.value,
            "include": result.include,
            "exclude": result.exclude,
            "artifact": result.artifact.to_dict() if result.artifact else None,
            "deleted_from": result.deleted_from,
            "message": result.message,
        })
        return

    if result.archived:
        console.print(f"[green]✓[/] {result.message}")
        if result.deleted_from is not None:
            console.print(f"  [dim]Deleted old snapshot of build #{result.deleted_from}[/]")
    else:
        console.print(f"[yellow]•[/] {result.message}")


# ─────────────────────────────────────────────────────────────────
# Consumer
# ─────────────────────────────────────────────────────────────────


@main.command("resolve")
@click.argument("upstream")
@click.option("--criterion", type=_CRITERION_CHOICE, help="Minimum upstream outcome")
@click.pass_context
def resolve(ctx: click.Context, upstream: str, criterion: str | None) -> None:
    """Show which build of UPSTREAM a checkout would restore."""
    chosen = Criterion.parse(criterion) if criterion else _config(ctx).consumer.criterion
    try:
        resolved = LineageResolver().resolve(_registry(ctx), upstream, chosen)
    except ClonespaceError as e:
        _fail(ctx, e)

    if ctx.obj["json"]:
        _emit_json({
            "job": resolved.job_name,
            "build": resolved.build.number,
            "outcome": resolved.build.outcome.name if resolved.build.outcome is not None else None,
            "artifact": resolved.artifact.to_dict(),
        })
        return
    console.print(
        Panel(
            f"[bold]{resolved.build.display_name}[/]\n"
            f"Outcome: {resolved.build.outcome.name if resolved.build.outcome is not None else '?'}\n"
            f"Snapshot: {resolved.artifact.path}",
            title=f"{upstream} ({chosen.value})",
            border_style="cyan",
        )
    )


@main.command("checkout")
@click.argument("job_name")
@click.option("--build", "build_number", type=int, help="Existing build to check out into")
@click.option("--upstream", help="Override the configured upstream job")
@click.option("--criterion", type=_CRITERION_CHOICE, help="Override the configured criterion")
@click.option("--param", "params", multiple=True, metavar="K=V", help="Parameter of the new build")
@click.pass_context
def checkout(
    ctx: click.Context,
    job_name: str,
    build_number: int | None,
    upstream: str | None,
    criterion: str | None,
    params: tuple[str, ...],
) -> None:
    """Restore the upstream snapshot into JOB's workspace.

    Without --build a new build of JOB is started and finished as SUCCESS
    once the workspace is restored (or FAILURE when it cannot be).
    """
    job = _require_job(ctx, job_name)
    settings = job.consumer
    if upstream is None and settings is None:
        raise click.ClickException(f"{job.name} has no upstream job; pass --upstream or configure one")
    settings = ConsumerSettings(
        upstream_job_name=upstream or settings.upstream_job_name,
        criterion=criterion or (settings.criterion if settings else _config(ctx).consumer.criterion),
    )

    if build_number:
        build = job.get_build(build_number)
        if build is None:
            raise click.ClickException(f"{job.name} has no build #{build_number}")
        started = False
    else:
        build = job.new_build(parameters=_parse_pairs(params, "--param"))
        started = True

    cloner = WorkspaceCloner(settings, _registry(ctx))
    try:
        result = cloner.checkout(build)
    except ClonespaceError as e:
        if started:
            build.finish(Outcome.FAILURE)
        _fail(ctx, e)

    if started:
        build.finish(Outcome.SUCCESS)

    if ctx.obj["json"]:
        _emit_json({
            "build": build.number,
            "upstream": result.upstream.job_name,
            "upstream_build": result.upstream_number,
            "entries": result.entries,
            "destination": str(result.destination),
        })
        return
    console.print(
        f"[green]✓[/] Restored {result.entries} entries from "
        f"{result.upstream.build.display_name} into {result.destination}"
    )


@main.command("poll")
@click.argument("job_name")
@click.pass_context
def poll(ctx: click.Context, job_name: str) -> None:
    """Check whether JOB's upstream has a newer qualifying snapshot."""
    job = _require_job(ctx, job_name)
    if job.consumer is None:
        raise click.ClickException(f"{job.name} does not clone a workspace")

    result = WorkspaceCloner(job.consumer, _registry(ctx)).poll(job)

    if ctx.obj["json"]:
        _emit_json({
            "change": result.change.value,
            "recorded": result.recorded,
            "current": result.current,
            "message": result.message,
        })
        return

    style = {
        PollChange.NO_CHANGES: "green",
        PollChange.REBUILD_NEEDED: "yellow",
        PollChange.UPSTREAM_MISSING: "red",
    }[result.change]
    console.print(f"[{style}]{result.change.value}[/] {result.message}")


if __name__ == "__main__":
    cli_entrypoint()
