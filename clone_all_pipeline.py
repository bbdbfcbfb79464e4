"""
List -> diff -> clone -> report.

The differ and the reporter are pure; the executor is the only parallel stage
and the clone callable it is given is the only thing that touches the disk.
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from rich.table import Table

from clone_all_errors import CloneFailed


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class CloneJob:
    name: str
    depth: Optional[int] = None
    status: JobStatus = JobStatus.PENDING
    exit_status: Optional[int] = None

    @property
    def shallow(self) -> bool:
        return bool(self.depth)


@dataclass(frozen=True)
class Partition:
    present: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.present) + len(self.missing)


@dataclass(frozen=True)
class RunResult:
    total_remote: int
    already_present: int
    attempted: int
    succeeded: int
    failed: int
    failed_names: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.already_present + self.attempted != self.total_remote:
            raise ValueError(
                f"already_present ({self.already_present}) + attempted ({self.attempted}) "
                f"!= total_remote ({self.total_remote})"
            )
        if self.succeeded + self.failed != self.attempted:
            raise ValueError(
                f"succeeded ({self.succeeded}) + failed ({self.failed}) "
                f"!= attempted ({self.attempted})"
            )


# ────────────────────────────────
# DIFF
# ────────────────────────────────

def partition_repositories(names: Iterable[str], base_dir: Path) -> Partition:
    """Split remote names into those already cloned under base_dir and those missing."""
    base_dir = Path(base_dir)
    present: List[str] = []
    missing: List[str] = []
    for name in dict.fromkeys(names):
        if (base_dir / name).is_dir():
            present.append(name)
        else:
            missing.append(name)
    return Partition(present=present, missing=missing)


# ────────────────────────────────
# CLONE
# ────────────────────────────────

def make_jobs(names: Sequence[str], depth: Optional[int] = None) -> List[CloneJob]:
    return [CloneJob(name=name, depth=depth or None) for name in names]


def _run_one(
    index: int,
    job: CloneJob,
    clone: Callable[[CloneJob], object],
    on_start: Optional[Callable[[int, CloneJob], None]],
) -> CloneJob:
    job.status = JobStatus.RUNNING
    if on_start:
        on_start(index, job)
    try:
        clone(job)
    except CloneFailed as e:
        job.status = JobStatus.FAILED
        job.exit_status = e.exit_status
    else:
        job.status = JobStatus.SUCCEEDED
        job.exit_status = 0
    return job


def run_clone_jobs(
    jobs: Sequence[CloneJob],
    clone: Callable[[CloneJob], object],
    max_workers: int,
    on_start: Optional[Callable[[int, CloneJob], None]] = None,
    on_finish: Optional[Callable[[CloneJob], None]] = None,
) -> List[CloneJob]:
    """
    Run `clone` once per job with at most `max_workers` clones in flight.

    Jobs are submitted in order and start as soon as a worker is free. A job
    whose clone raises CloneFailed is marked failed; its siblings carry on.
    Blocks until every job is done and returns the jobs in submission order.
    """
    if max_workers < 1:
        raise ValueError(f"max_workers must be at least 1, got {max_workers}")
    if not jobs:
        return []

    with ThreadPoolExecutor(max_workers=min(max_workers, len(jobs))) as ex:
        futures = [
            ex.submit(_run_one, index, job, clone, on_start)
            for index, job in enumerate(jobs, start=1)
        ]
        for fut in as_completed(futures):
            job = fut.result()
            if on_finish:
                on_finish(job)
    return list(jobs)


# ────────────────────────────────
# REPORT
# ────────────────────────────────

def summarize(total_remote: int, partition: Partition, jobs: Sequence[CloneJob]) -> RunResult:
    succeeded = sum(1 for job in jobs if job.status is JobStatus.SUCCEEDED)
    failed_names = [job.name for job in jobs if job.status is JobStatus.FAILED]
    return RunResult(
        total_remote=total_remote,
        already_present=len(partition.present),
        attempted=len(jobs),
        succeeded=succeeded,
        failed=len(failed_names),
        failed_names=failed_names,
    )


def render_summary(result: RunResult) -> Table:
    table = Table(title="Clone summary", show_header=True, header_style="bold")
    table.add_column("Found", justify="right")
    table.add_column("Already present", justify="right")
    table.add_column("Attempted", justify="right")
    table.add_column("Cloned", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red" if result.failed else None)
    table.add_row(
        str(result.total_remote),
        str(result.already_present),
        str(result.attempted),
        str(result.succeeded),
        str(result.failed),
    )
    return table
