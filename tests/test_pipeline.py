import threading
import time
from io import StringIO

import pytest
from rich.console import Console

from clone_all_errors import CloneFailed
from clone_all_pipeline import (
    CloneJob,
    JobStatus,
    Partition,
    RunResult,
    make_jobs,
    partition_repositories,
    render_summary,
    run_clone_jobs,
    summarize,
)


def test_partition_splits_present_and_missing_in_order(tmp_path):
    (tmp_path / "B").mkdir()
    (tmp_path / "D").mkdir()

    partition = partition_repositories(["A", "B", "C", "D", "E"], tmp_path)

    assert partition.present == ["B", "D"]
    assert partition.missing == ["A", "C", "E"]
    assert partition.total == 5


def test_partition_ignores_local_directories_not_listed_remotely(tmp_path):
    (tmp_path / "unrelated").mkdir()

    partition = partition_repositories(["A"], tmp_path)

    assert partition.present == []
    assert partition.missing == ["A"]


def test_partition_treats_plain_file_as_missing(tmp_path):
    (tmp_path / "A").write_text("not a clone")

    partition = partition_repositories(["A"], tmp_path)

    assert partition.missing == ["A"]


def test_partition_collapses_duplicate_names(tmp_path):
    partition = partition_repositories(["A", "B", "A"], tmp_path)

    assert partition.missing == ["A", "B"]
    assert set(partition.present) | set(partition.missing) == {"A", "B"}


def test_partition_of_nonexistent_base_dir_is_all_missing(tmp_path):
    partition = partition_repositories(["A", "B"], tmp_path / "nope")

    assert partition.present == []
    assert partition.missing == ["A", "B"]


def test_make_jobs_normalizes_zero_depth_to_full_history():
    assert [job.depth for job in make_jobs(["A", "B"], 0)] == [None, None]
    assert [job.depth for job in make_jobs(["A"], 10)] == [10]
    assert all(job.status is JobStatus.PENDING for job in make_jobs(["A", "B"]))


def test_run_clone_jobs_with_no_jobs_never_calls_clone():
    calls = []

    assert run_clone_jobs([], calls.append, max_workers=3) == []
    assert calls == []


def test_run_clone_jobs_never_exceeds_max_workers():
    lock = threading.Lock()
    in_flight = 0
    peak = 0

    def clone(job):
        nonlocal in_flight, peak
        with lock:
            in_flight += 1
            peak = max(peak, in_flight)
        time.sleep(0.02)
        with lock:
            in_flight -= 1

    jobs = run_clone_jobs(make_jobs([f"repo-{i}" for i in range(12)]), clone, max_workers=3)

    assert peak <= 3
    assert all(job.status is JobStatus.SUCCEEDED for job in jobs)


def test_run_clone_jobs_runs_jobs_concurrently():
    # both clones must be in flight at once for the barrier to open
    barrier = threading.Barrier(2, timeout=5)

    jobs = run_clone_jobs(make_jobs(["A", "C"]), lambda job: barrier.wait(), max_workers=2)

    assert [job.status for job in jobs] == [JobStatus.SUCCEEDED, JobStatus.SUCCEEDED]


def test_run_clone_jobs_isolates_failures():
    def clone(job):
        if job.name == "bad":
            raise CloneFailed(job.name, 128)

    jobs = run_clone_jobs(make_jobs(["a", "bad", "c", "d"]), clone, max_workers=2)

    by_name = {job.name: job for job in jobs}
    assert by_name["bad"].status is JobStatus.FAILED
    assert by_name["bad"].exit_status == 128
    assert [by_name[n].status for n in ("a", "c", "d")] == [JobStatus.SUCCEEDED] * 3


def test_run_clone_jobs_starts_jobs_in_submission_order():
    started = []
    finished = []

    run_clone_jobs(
        make_jobs(["x", "y", "z"]),
        lambda job: None,
        max_workers=1,
        on_start=lambda index, job: started.append((index, job.name)),
        on_finish=lambda job: finished.append(job.name),
    )

    assert started == [(1, "x"), (2, "y"), (3, "z")]
    assert sorted(finished) == ["x", "y", "z"]


def test_run_clone_jobs_calls_each_job_exactly_once():
    lock = threading.Lock()
    calls = []

    def clone(job):
        with lock:
            calls.append(job.name)

    names = [f"r{i}" for i in range(20)]
    jobs = run_clone_jobs(make_jobs(names), clone, max_workers=4)

    assert sorted(calls) == sorted(names)
    assert [job.name for job in jobs] == names


def test_run_clone_jobs_rejects_zero_workers():
    with pytest.raises(ValueError):
        run_clone_jobs(make_jobs(["a"]), lambda job: None, max_workers=0)


def test_summarize_counts_terminal_states():
    partition = Partition(present=["B"], missing=["A", "C", "D"])
    jobs = [
        CloneJob("A", status=JobStatus.SUCCEEDED),
        CloneJob("C", status=JobStatus.FAILED),
        CloneJob("D", status=JobStatus.SUCCEEDED),
    ]

    result = summarize(4, partition, jobs)

    assert result == RunResult(
        total_remote=4, already_present=1, attempted=3, succeeded=2, failed=1, failed_names=["C"]
    )


def test_summarize_scenario_one_present_two_cloned(tmp_path):
    (tmp_path / "B").mkdir()
    partition = partition_repositories(["A", "B", "C"], tmp_path)
    jobs = run_clone_jobs(make_jobs(partition.missing), lambda job: None, max_workers=2)

    result = summarize(3, partition, jobs)

    assert (result.total_remote, result.already_present, result.attempted) == (3, 1, 2)
    assert (result.succeeded, result.failed) == (2, 0)


def test_run_result_rejects_inconsistent_counts():
    with pytest.raises(ValueError):
        RunResult(total_remote=3, already_present=1, attempted=1, succeeded=1, failed=0)
    with pytest.raises(ValueError):
        RunResult(total_remote=3, already_present=1, attempted=2, succeeded=2, failed=1)


def test_render_summary_shows_counts():
    result = RunResult(total_remote=3, already_present=1, attempted=2, succeeded=1, failed=1)
    out = Console(file=StringIO(), width=120, record=True)

    out.print(render_summary(result))
    text = out.export_text()

    assert "Clone summary" in text
    assert "Already present" in text
    assert render_summary(result).row_count == 1
