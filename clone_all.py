import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import click
import typer
from rich.console import Console

from clone_all_errors import CloneAllError, ConfigError
from clone_all_forge import clone_repository, ensure_git, list_repositories
from clone_all_pipeline import (
    CloneJob,
    JobStatus,
    RunResult,
    make_jobs,
    partition_repositories,
    render_summary,
    run_clone_jobs,
    summarize,
)

DEFAULT_JOBS = 5
DEFAULT_LIMIT = 25

app = typer.Typer(
    name="clone-all",
    help="Clone every repository owned by a GitHub user or organization.",
    add_completion=False,
)
console = Console()

EXAMPLES = """\
Examples:

Clone at most 500 repositories owned by me, 16 at a time, into the current directory:

clone-all --owner me --jobs 16 --limit 500 --dir .

Clone the last 10 commits of microsoft's repositories into ./microsoft, 20 at a time:

clone-all --owner microsoft --jobs 20 --limit 500 --dir ./microsoft --depth 10

See what would be cloned:

clone-all --owner me --dry-run
"""


# ────────────────────────────────
# SETTINGS
# ────────────────────────────────

@dataclass(frozen=True)
class CloneSettings:
    owner: str
    directory: Path
    limit: int = DEFAULT_LIMIT
    jobs: int = DEFAULT_JOBS
    depth: int = 0
    token: Optional[str] = None
    dry_run: bool = False

    @classmethod
    def from_options(
        cls,
        owner: Optional[str],
        directory: Optional[Path] = None,
        limit: Optional[int] = None,
        jobs: Optional[int] = None,
        depth: Optional[int] = None,
        token: Optional[str] = None,
        dry_run: bool = False,
    ) -> "CloneSettings":
        if not owner or not owner.strip():
            raise ConfigError("Owner not provided")
        if limit is not None and limit < 0:
            raise ConfigError(f"Limit must be a positive number; received '{limit}'")
        if jobs is not None and jobs < 1:
            raise ConfigError(f"Number of jobs must be at least 1; received '{jobs}'")
        if depth is not None and depth < 0:
            raise ConfigError(f"Clone commit depth must be 0 (full history) or a positive number; received '{depth}'")

        return cls(
            owner=owner.strip(),
            directory=Path(directory) if directory else Path.cwd(),
            limit=DEFAULT_LIMIT if limit is None else limit,
            jobs=DEFAULT_JOBS if jobs is None else jobs,
            depth=depth or 0,
            token=token or None,
            dry_run=dry_run,
        )


def default_notices(
    directory: Optional[Path], limit: Optional[int], jobs: Optional[int], settings: CloneSettings
) -> List[str]:
    notices = []
    if jobs is None:
        notices.append(f"Job count not specified, using default of {settings.jobs}")
    if limit is None:
        notices.append(f"Max repo limit not specified, using default of {settings.limit}")
    if directory is None:
        notices.append(f"Directory not specified, using default of {settings.directory}")
    return notices


# ────────────────────────────────
# RUN
# ────────────────────────────────

def run(settings: CloneSettings, out: Console = console) -> Optional[RunResult]:
    """
    List, diff and clone. Returns the run summary, or None for a dry run that
    had something left to clone.
    """
    directory = settings.directory
    if not directory.is_dir() and not settings.dry_run:
        out.print(f"Directory {directory} does not exist, creating it...")
        try:
            directory.mkdir(parents=True)
        except OSError as e:
            raise ConfigError(f"Cannot create directory {directory}: {e.strerror or e}") from None

    out.print(f"Fetching repo list for [cyan]{settings.owner}[/cyan] (at most {settings.limit})...")
    names = list_repositories(settings.owner, settings.limit, settings.token)
    out.print(f"Found {len(names)} repositories.")

    partition = partition_repositories(names, directory)
    if not partition.missing:
        out.print("[green]✅ All repos are already present.[/green]")
        return summarize(partition.total, partition, [])

    out.print(f"Cloning {len(partition.missing)} new repositories to {directory}.")
    out.print(f"{len(partition.present)} repos are present and will be skipped.")
    out.print(f"Will use {settings.jobs} clone operations simultaneously.")
    out.print("")
    out.print("***")
    if settings.depth:
        out.print(f"Cloning to a depth of {settings.depth} commits.")
    else:
        out.print("Cloning the full history.")
    out.print("***")

    if settings.dry_run:
        for name in partition.missing:
            out.print(f"  [dim]\\[dry run][/dim] would clone: {settings.owner}/{name}")
        return None

    def clone(job: CloneJob):
        return clone_repository(settings.owner, job.name, directory, job.depth, settings.token)

    def on_start(index: int, job: CloneJob):
        suffix = f" (depth {job.depth})" if job.shallow else ""
        out.print(f"- [{index}] [blue]⏬ cloning[/blue] {settings.owner}/{job.name}{suffix}...", highlight=False)

    def on_finish(job: CloneJob):
        if job.status is JobStatus.SUCCEEDED:
            out.print(f"[green]✅ Cloned:[/green] {settings.owner}/{job.name}")
        else:
            status = f" (exit status {job.exit_status})" if job.exit_status is not None else ""
            out.print(f"[red]❌ Failed cloning {settings.owner}/{job.name}{status}[/red]")

    jobs = run_clone_jobs(
        make_jobs(partition.missing, settings.depth),
        clone,
        max_workers=settings.jobs,
        on_start=on_start,
        on_finish=on_finish,
    )

    result = summarize(partition.total, partition, jobs)
    out.print("")
    out.print(render_summary(result))
    if result.failed_names:
        out.print("[yellow]⚠️ Failed repositories:[/yellow]")
        for name in result.failed_names:
            out.print(f"   • {name}")
    return result


def fail(error: Exception) -> None:
    console.print(f"[red]Error:[/red] {error}", highlight=False)
    console.print("See --help")
    raise typer.Exit(code=1)


# ────────────────────────────────
# COMMAND
# ────────────────────────────────

@app.command(epilog=EXAMPLES)
def clone_all(
    owner: Optional[str] = typer.Option(
        None, "--owner", envvar="CLONE_ALL_OWNER",
        help="Username or organization name whose repositories are cloned (required)",
    ),
    directory: Optional[Path] = typer.Option(
        None, "--dir", envvar="CLONE_ALL_DIR",
        help="Directory where the repositories are cloned (default: current directory)",
        file_okay=False,
    ),
    limit: Optional[int] = typer.Option(
        None, "--limit", envvar="CLONE_ALL_LIMIT",
        help=f"Maximum number of repositories to list (default: {DEFAULT_LIMIT})",
    ),
    jobs: Optional[int] = typer.Option(
        None, "--jobs", envvar="CLONE_ALL_JOBS",
        help=f"Number of clone operations to run in parallel (default: {DEFAULT_JOBS})",
    ),
    depth: int = typer.Option(
        0, "--depth", envvar="CLONE_ALL_DEPTH",
        help="Clone only this many most recent commits; 0 clones the full history",
    ),
    token: Optional[str] = typer.Option(None, envvar="GITHUB_TOKEN", help="GitHub token"),
    dry_run: bool = typer.Option(False, "--dry-run", help="List what would be cloned without cloning"),
):
    """
    Clone every repository owned by a GitHub user or organization.

    Repositories whose directory already exists are skipped, so an interrupted
    run can simply be started again.
    """
    try:
        settings = CloneSettings.from_options(owner, directory, limit, jobs, depth, token, dry_run)
        for notice in default_notices(directory, limit, jobs, settings):
            console.print(f"- {notice}")
        ensure_git()
        run(settings)
    except CloneAllError as e:
        fail(e)


def main(argv: Optional[List[str]] = None) -> int:
    try:
        code = app(args=argv, prog_name="clone-all", standalone_mode=False)
    except click.ClickException as e:
        console.print(f"[red]Error:[/red] {e.format_message()}", highlight=False)
        console.print("See --help")
        return 1
    except click.exceptions.Abort:
        console.print("[yellow]Aborted.[/yellow]")
        return 1
    return code if isinstance(code, int) else 0


if __name__ == "__main__":
    sys.exit(main())
