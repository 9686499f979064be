"""CLI entrypoint for media-jobs."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from media_jobs import __version__
from media_jobs.orchestrator.controllers import (
    JobBatchCommand,
    JobCliController,
    JobListCommand,
    JobPruneCommand,
    JobRunCommand,
    JobStatusCommand,
    JobSubmitCommand,
    KeysStatusCommand,
)
from media_jobs.orchestrator.models import JobKind, JobStatus
from media_jobs.orchestrator.providers.registry import ECHO_PROVIDER, REMOTE_PROVIDER

click.rich_click.USE_MARKDOWN = True
JOB_CONTROLLER = JobCliController()

_KIND_CHOICE = click.Choice([kind.value for kind in JobKind], case_sensitive=False)
_PROVIDER_OPTION = click.option(
    "--provider",
    type=click.Choice([REMOTE_PROVIDER, ECHO_PROVIDER], case_sensitive=False),
    default=REMOTE_PROVIDER,
    show_default=True,
    help="`remote` calls the configured providers, `echo` runs a local deterministic adapter.",
)
_DB_PATH_OPTION = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path.",
)


@click.group()
@click.version_option(version=__version__, prog_name="media-jobs")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def media_jobs(log_level: str) -> None:
    """Media generation job CLI."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@media_jobs.group()
def jobs() -> None:
    """Generation job commands."""


@jobs.command("submit")
@_DB_PATH_OPTION
@click.option("--kind", type=_KIND_CHOICE, required=True, help="Kind of media to generate.")
@click.option("--prompt", required=True, help="Generation prompt.")
@click.option(
    "--param",
    "params",
    multiple=True,
    help="Extra input as `key=value`, for example `image_size=4K`. Can be repeated.",
)
@click.option("--wait", is_flag=True, default=False, help="Run the job now and wait for it.")
@_PROVIDER_OPTION
def jobs_submit(  # noqa: PLR0913
    db_path: Path | None,
    kind: str,
    prompt: str,
    params: tuple[str, ...],
    wait: bool,
    provider: str,
) -> None:
    """Create a job; with `--wait` also run it to a terminal state."""

    _emit_lines(
        _checked(
            lambda: JOB_CONTROLLER.submit(
                JobSubmitCommand(
                    db_path=db_path,
                    kind=kind,
                    prompt=prompt,
                    params=params,
                    wait=wait,
                    provider=provider,
                ),
            ),
        ),
    )


@jobs.command("run")
@_DB_PATH_OPTION
@click.argument("job_id")
@_PROVIDER_OPTION
def jobs_run(db_path: Path | None, job_id: str, provider: str) -> None:
    """Run a pending job to a terminal state."""

    _emit_lines(
        _checked(
            lambda: JOB_CONTROLLER.run(
                JobRunCommand(db_path=db_path, job_id=job_id, provider=provider),
            ),
        ),
    )


@jobs.command("status")
@_DB_PATH_OPTION
@click.argument("job_id")
def jobs_status(db_path: Path | None, job_id: str) -> None:
    """Show one job."""

    _emit_lines(JOB_CONTROLLER.status(JobStatusCommand(db_path=db_path, job_id=job_id)))


@jobs.command("list")
@_DB_PATH_OPTION
@click.option(
    "--status",
    type=click.Choice([status.value for status in JobStatus], case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max jobs to print.",
)
def jobs_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List recent jobs."""

    _emit_lines(
        JOB_CONTROLLER.list_jobs(
            JobListCommand(
                db_path=db_path,
                status=status,
                limit=limit,
            ),
        ),
    )


@jobs.command("batch")
@_DB_PATH_OPTION
@click.option("--kind", type=_KIND_CHOICE, required=True, help="Kind of media to generate.")
@click.option(
    "--prompt",
    "prompts",
    multiple=True,
    required=True,
    help="Prompt for one batch item. Can be repeated.",
)
@click.option("--param", "params", multiple=True, help="Extra input shared by every item.")
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Jobs per chunk. Defaults to 8 for image/speech and 20 for video/composite.",
)
@_PROVIDER_OPTION
def jobs_batch(  # noqa: PLR0913
    db_path: Path | None,
    kind: str,
    prompts: tuple[str, ...],
    params: tuple[str, ...],
    concurrency: int | None,
    provider: str,
) -> None:
    """Run one job per prompt with bounded concurrency."""

    _emit_lines(
        _checked(
            lambda: JOB_CONTROLLER.batch(
                JobBatchCommand(
                    db_path=db_path,
                    kind=kind,
                    prompts=prompts,
                    params=params,
                    concurrency=concurrency,
                    provider=provider,
                ),
            ),
        ),
    )


@jobs.command("prune")
@_DB_PATH_OPTION
@click.option(
    "--older-than-days",
    type=click.IntRange(min=0),
    default=30,
    show_default=True,
    help="Delete completed/failed jobs last updated before this many days ago.",
)
@click.option("--dry-run", is_flag=True, default=False, help="Only count matching jobs.")
def jobs_prune(db_path: Path | None, older_than_days: int, dry_run: bool) -> None:
    """Retention sweep over terminal jobs."""

    _emit_lines(
        JOB_CONTROLLER.prune(
            JobPruneCommand(
                db_path=db_path,
                older_than_days=older_than_days,
                dry_run=dry_run,
            ),
        ),
    )


@media_jobs.group()
def keys() -> None:
    """Provider credential commands."""


@keys.command("status")
@_DB_PATH_OPTION
def keys_status(db_path: Path | None) -> None:
    """Show configured credential counts per provider."""

    _emit_lines(JOB_CONTROLLER.keys_status(KeysStatusCommand(db_path=db_path)))


def _checked(action: Callable[[], list[str]]) -> list[str]:
    try:
        return action()
    except ValueError as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    media_jobs()
