import random
import threading

import pytest

from scriptmaster.errors import NothingToRender, PipelineBusy
from scriptmaster.scheduler import QUOTA_STOP_MESSAGE, RenderScheduler, compute_delay
from scriptmaster.schemas import (
    GenerationSettings,
    ImageGenerationJob,
    JobStatus,
    PipelineStatus,
)


def _jobs(n):
    return [
        ImageGenerationJob(id=f"{i}-0", scene_id=i, prompt=f"prompt {i}")
        for i in range(1, n + 1)
    ]


def _ok(prompt, aspect_ratio):
    return f"data:image/jpeg;base64,{len(prompt)}"


class Recorder:
    def __init__(self):
        self.delays = []

    def __call__(self, delay):
        self.delays.append(delay)
        return False


def test_quota_failure_halts_pass():
    def render(prompt, aspect_ratio):
        if prompt == "prompt 2":
            raise RuntimeError("429 RESOURCE_EXHAUSTED: Quota Exceeded for this project")
        return "data:image/jpeg;base64,AA=="

    sched = RenderScheduler(_jobs(4), GenerationSettings(), render, wait_fn=Recorder())
    snap = sched.run()

    assert snap.status == PipelineStatus.ERROR
    assert snap.error == QUOTA_STOP_MESSAGE
    assert [j.status for j in snap.jobs] == [
        JobStatus.COMPLETED, JobStatus.ERROR, JobStatus.PENDING, JobStatus.PENDING,
    ]
    assert "Quota Exceeded" in snap.jobs[1].error


def test_non_fatal_failure_advances_after_delay():
    def render(prompt, aspect_ratio):
        if prompt == "prompt 1":
            raise RuntimeError("Image generation failed due to safety filters.")
        return "data:image/jpeg;base64,AA=="

    waits = Recorder()
    sched = RenderScheduler(
        _jobs(3), GenerationSettings(fixed_wait_time=3), render, wait_fn=waits,
    )
    snap = sched.run()

    assert snap.jobs[0].status == JobStatus.ERROR
    assert snap.jobs[0].error.startswith("Image generation failed")
    assert [j.status for j in snap.jobs[1:]] == [JobStatus.COMPLETED, JobStatus.COMPLETED]
    assert waits.delays == [3, 3, 3]
    assert snap.status == PipelineStatus.COMPLETED


def test_three_job_pass_completes():
    seen = []

    def render(prompt, aspect_ratio):
        seen.append((prompt, aspect_ratio))
        if prompt == "prompt 2":
            raise RuntimeError("boom")
        return "data:image/jpeg;base64,AA=="

    sched = RenderScheduler(
        _jobs(3), GenerationSettings(), render, aspect_ratio="9:16", wait_fn=Recorder(),
    )
    snap = sched.run()

    assert snap.status == PipelineStatus.COMPLETED
    assert snap.cursor == 3
    assert all(j.status.terminal for j in snap.jobs)
    assert seen == [("prompt 1", "9:16"), ("prompt 2", "9:16"), ("prompt 3", "9:16")]


def test_one_job_in_flight_at_a_time():
    in_flight = []
    peak = []

    def render(prompt, aspect_ratio):
        in_flight.append(prompt)
        peak.append(len(in_flight))
        in_flight.remove(prompt)
        return "data:image/jpeg;base64,AA=="

    snapshots = []
    sched = RenderScheduler(
        _jobs(3), GenerationSettings(), render, wait_fn=Recorder(), on_change=snapshots.append,
    )
    sched.run()
    assert max(peak) == 1
    for snap in snapshots:
        assert sum(j.status == JobStatus.GENERATING for j in snap.jobs) <= 1


def test_cancel_discards_late_result():
    started = threading.Event()
    release = threading.Event()
    calls = []

    def render(prompt, aspect_ratio):
        calls.append(prompt)
        started.set()
        release.wait(5)
        return "data:image/jpeg;base64,LATE"

    sched = RenderScheduler(_jobs(3), GenerationSettings(fixed_wait_time=0), render)
    sched.start()
    assert started.wait(5)
    assert sched.snapshot().jobs[0].status == JobStatus.GENERATING

    sched.cancel()
    release.set()
    sched.join(5)

    snap = sched.snapshot()
    assert snap.status == PipelineStatus.IDLE
    assert all(j.status == JobStatus.PENDING for j in snap.jobs)
    assert all(j.image_url is None for j in snap.jobs)
    assert calls == ["prompt 1"]


def test_cancel_during_delay_stops_pass():
    sched_ref = {}

    def cancel_on_wait(delay):
        sched_ref["s"].cancel()
        return True

    sched = RenderScheduler(_jobs(3), GenerationSettings(), _ok, wait_fn=cancel_on_wait)
    sched_ref["s"] = sched
    snap = sched.run()
    assert snap.status == PipelineStatus.IDLE
    assert [j.status for j in snap.jobs] == [JobStatus.COMPLETED, JobStatus.PENDING, JobStatus.PENDING]


def test_resolved_jobs_are_not_rendered_again():
    jobs = _jobs(3)
    jobs[0] = jobs[0].model_copy(update={"status": JobStatus.COMPLETED, "image_url": "data:,x"})
    jobs[1] = jobs[1].model_copy(update={"status": JobStatus.ERROR, "error": "old"})
    calls = []

    def render(prompt, aspect_ratio):
        calls.append(prompt)
        return "data:image/jpeg;base64,AA=="

    snap = RenderScheduler(jobs, GenerationSettings(), render, wait_fn=Recorder()).run()
    assert calls == ["prompt 3"]
    assert snap.jobs[1].error == "old"
    assert snap.status == PipelineStatus.COMPLETED


def test_empty_queue_does_not_start():
    sched = RenderScheduler([], GenerationSettings(), _ok)
    with pytest.raises(NothingToRender):
        sched.run()
    assert sched.status == PipelineStatus.IDLE


def test_second_start_while_running_is_refused():
    release = threading.Event()

    def render(prompt, aspect_ratio):
        release.wait(5)
        return "data:image/jpeg;base64,AA=="

    sched = RenderScheduler(_jobs(1), GenerationSettings(fixed_wait_time=0), render)
    sched.start()
    with pytest.raises(PipelineBusy):
        sched.start()
    release.set()
    sched.join(5)
    assert sched.status == PipelineStatus.COMPLETED


def test_success_updates_usage_and_auto_downloads():
    class Usage:
        n = 0

        def increment(self):
            self.n += 1
            return self.n

    usage = Usage()
    downloaded = []
    sched = RenderScheduler(
        _jobs(2),
        GenerationSettings(auto_download=True),
        _ok,
        usage=usage,
        downloader=lambda job: downloaded.append(job.id),
        wait_fn=Recorder(),
    )
    sched.run()
    assert usage.n == 2
    assert downloaded == ["1-0", "2-0"]


def test_auto_download_off_by_default():
    downloaded = []
    RenderScheduler(
        _jobs(2), GenerationSettings(), _ok,
        downloader=lambda job: downloaded.append(job.id), wait_fn=Recorder(),
    ).run()
    assert downloaded == []


def test_snapshots_are_copies():
    sched = RenderScheduler(_jobs(1), GenerationSettings(), _ok, wait_fn=Recorder())
    snap = sched.snapshot()
    snap.jobs[0].status = JobStatus.ERROR
    assert sched.snapshot().jobs[0].status == JobStatus.PENDING


def test_compute_delay():
    assert compute_delay(GenerationSettings(fixed_wait_time=4)) == 4
    settings = GenerationSettings(wait_time_mode="random", random_wait_time_min=2, random_wait_time_max=5)
    rng = random.Random(7)
    delays = [compute_delay(settings, rng) for _ in range(50)]
    assert all(2 <= d <= 5 for d in delays)
    assert len(set(delays)) > 1


def test_cancelled_pass_refuses_restart_until_loop_returns():
    started = threading.Event()
    release = threading.Event()

    def render(prompt, aspect_ratio):
        started.set()
        release.wait(5)
        return "data:image/jpeg;base64,AA=="

    sched = RenderScheduler(_jobs(2), GenerationSettings(fixed_wait_time=0), render)
    sched.start()
    assert started.wait(5)
    sched.cancel()
    assert sched.running
    with pytest.raises(PipelineBusy):
        sched.start()

    release.set()
    sched.join(5)
    assert not sched.running
    snap = sched.run()
    assert snap.status == PipelineStatus.COMPLETED
