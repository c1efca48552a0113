from source_context.config import JobQueueConfig
from source_context.jobs.queue import JobQueue, JobResult


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_job_lifecycle() -> None:
    queue = JobQueue(clock=FakeClock())

    job = queue.create_job(3)

    assert job.id.startswith("job_")
    assert job.status == "pending"
    assert job.progress.completed == 0
    assert job.progress.total == 3
    assert job.results == []
    assert job.completed_at is None

    assert queue.update_job(job.id, status="running")
    assert queue.update_progress(job.id, 1, "guide.md")
    assert queue.add_result(
        job.id,
        JobResult(doc_path="guide.md", files=["src/a.ts"], confidence="high", reasoning=["r"]),
    )
    running = queue.get_job(job.id)
    assert running.status == "running"
    assert running.progress.completed == 1
    assert running.progress.current == "guide.md"
    assert [result.doc_path for result in running.results] == ["guide.md"]

    assert queue.complete_job(job.id)
    done = queue.get_job(job.id)
    assert done.status == "completed"
    assert done.completed_at is not None


def test_fail_job_records_error() -> None:
    queue = JobQueue(clock=FakeClock())
    job = queue.create_job(1)

    queue.fail_job(job.id, "X")

    failed = queue.get_job(job.id)
    assert failed.status == "failed"
    assert failed.error == "X"
    assert failed.completed_at is not None


def test_operations_on_missing_job_are_noops() -> None:
    queue = JobQueue(clock=FakeClock())

    assert queue.get_job("job_missing") is None
    assert queue.update_job("job_missing", status="running") is False
    assert queue.update_progress("job_missing", 1, "a.md") is False
    assert queue.add_result("job_missing", JobResult(doc_path="a.md", confidence="low")) is False
    assert queue.complete_job("job_missing") is False
    assert queue.fail_job("job_missing", "boom") is False
    assert queue.get_all_jobs() == []


def test_capacity_keeps_most_recent_jobs() -> None:
    queue = JobQueue(clock=FakeClock())

    ids = [queue.create_job(1).id for _ in range(105)]

    jobs = queue.get_all_jobs()
    assert len(jobs) == 100
    assert jobs[0].id == ids[-1]
    assert {job.id for job in jobs} == set(ids[5:])


def test_ttl_evicts_old_jobs_on_next_create() -> None:
    clock = FakeClock()
    queue = JobQueue(JobQueueConfig(job_ttl_seconds=3600), clock=clock)
    old = queue.create_job(1)
    queue.complete_job(old.id)

    clock.now += 3601
    fresh = queue.create_job(1)

    assert [job.id for job in queue.get_all_jobs()] == [fresh.id]


def test_get_all_jobs_sorted_newest_first() -> None:
    clock = FakeClock()
    queue = JobQueue(clock=clock)
    first = queue.create_job(1)
    clock.now += 5
    second = queue.create_job(1)
    clock.now += 5
    third = queue.create_job(1)

    assert [job.id for job in queue.get_all_jobs()] == [third.id, second.id, first.id]


def test_returned_jobs_are_snapshots() -> None:
    queue = JobQueue(clock=FakeClock())
    job = queue.create_job(2)

    snapshot = queue.get_job(job.id)
    snapshot.progress.completed = 99
    snapshot.results.append(JobResult(doc_path="x.md", confidence="low"))

    stored = queue.get_job(job.id)
    assert stored.progress.completed == 0
    assert stored.results == []


def test_wire_shape_uses_camel_case() -> None:
    queue = JobQueue(clock=FakeClock())
    job = queue.create_job(1)
    queue.update_progress(job.id, 0, "a.md")

    wire = queue.get_job(job.id).to_wire()

    assert wire["progress"] == {"total": 1, "completed": 0, "current": "a.md"}
    assert "startedAt" in wire
    assert "completedAt" not in wire
    assert "error" not in wire
