import threading
from types import SimpleNamespace

import pytest

import scriptmaster.pipeline as pipeline_mod
from conftest import fake_client, plan_json
from scriptmaster.config import Config, PLAN_FILENAME
from scriptmaster.errors import (
    ChunkGenerationError,
    ConfigurationError,
    NothingToRender,
    PipelineBusy,
    PipelineCancelled,
    ScriptValidationError,
)
from scriptmaster.pipeline import Pipeline
from scriptmaster.schemas import GenerationSettings, JobStatus, PipelineStatus, PlanRequest

NO_WAIT = GenerationSettings(fixed_wait_time=0)


def _pipeline(config, usage, replies):
    return Pipeline(config, client=fake_client(replies), use_placeholders=True, usage=usage)


def test_plan_then_render(config, usage):
    p = _pipeline(config, usage, [plan_json([1, 2, 3], generate={2: False})])
    plan = p.generate_plan(PlanRequest(script="A short script.", aspect_ratio="1:1"))

    assert len(plan.scenes) == 3
    assert p.status == PipelineStatus.IDLE
    assert [j.id for j in p.jobs] == ["1-0", "3-0"]

    p.start_rendering(NO_WAIT, background=False)
    state = p.state()
    assert state.status == PipelineStatus.COMPLETED
    assert all(j.status == JobStatus.COMPLETED for j in state.jobs)
    assert all(j.image_url.startswith("data:image/jpeg;base64,") for j in state.jobs)
    assert state.images_today == 2


def test_settings_drive_job_queue(config, usage):
    p = _pipeline(config, usage, [plan_json([1, 2])])
    p.generate_plan(PlanRequest(script="Script."), GenerationSettings(runs_per_prompt=2, start_from_prompt=2))
    assert [j.id for j in p.jobs] == ["2-0", "2-1"]

    jobs = p.rebuild_jobs(GenerationSettings())
    assert [j.id for j in jobs] == ["1-0", "2-0"]


def test_render_without_plan(config, usage):
    p = _pipeline(config, usage, [])
    with pytest.raises(NothingToRender):
        p.start_rendering(NO_WAIT)
    assert p.status == PipelineStatus.IDLE


def test_render_with_empty_queue_stays_idle(config, usage):
    p = _pipeline(config, usage, [plan_json([1, 2], generate={1: False, 2: False})])
    p.generate_plan(PlanRequest(script="Script."))
    with pytest.raises(NothingToRender):
        p.start_rendering(NO_WAIT)
    assert p.status == PipelineStatus.IDLE


def test_plan_failure_sets_error_state(config, usage):
    p = _pipeline(config, usage, [RuntimeError("model overloaded")])
    with pytest.raises(ChunkGenerationError):
        p.generate_plan(PlanRequest(script="Script."))
    state = p.state()
    assert state.status == PipelineStatus.ERROR
    assert "model overloaded" in state.error
    assert state.plan is None


def test_missing_key_is_configuration_error(usage):
    p = Pipeline(Config(gemini_api_key=""), usage=usage)
    with pytest.raises(ScriptValidationError):
        p.generate_plan(PlanRequest(script=""))
    with pytest.raises(ConfigurationError):
        p.generate_plan(PlanRequest(script="Script."))
    assert p.status == PipelineStatus.IDLE


def test_observers_get_state_updates(config, usage):
    p = _pipeline(config, usage, [plan_json([1])])
    states = []
    unsubscribe = p.subscribe(states.append)
    p.generate_plan(PlanRequest(script="Script."))
    assert states[0].status == PipelineStatus.GENERATING_PROMPTS
    assert states[-1].status == PipelineStatus.IDLE
    assert states[-1].plan is not None

    unsubscribe()
    p.reset()
    assert states[-1].plan is not None


def _blocking_render(started, release):
    def render(prompt, aspect_ratio):
        started.set()
        release.wait(5)
        return "data:image/jpeg;base64,TEFURQ=="
    return render


def test_cancel_returns_in_flight_job_to_pending(config, usage, monkeypatch):
    started, release = threading.Event(), threading.Event()
    monkeypatch.setattr(pipeline_mod, "render_placeholder", _blocking_render(started, release))

    p = _pipeline(config, usage, [plan_json([1, 2])])
    p.generate_plan(PlanRequest(script="Script."))
    p.start_rendering(NO_WAIT)
    assert started.wait(5)
    assert p.status == PipelineStatus.GENERATING_IMAGES
    with pytest.raises(PipelineBusy):
        p.generate_plan(PlanRequest(script="Another."))

    p.cancel()
    release.set()
    p.wait(5)

    state = p.state()
    assert state.status == PipelineStatus.IDLE
    assert [j.status for j in state.jobs] == [JobStatus.PENDING, JobStatus.PENDING]
    assert state.images_today == 0


def test_reset_during_render_ignores_late_result(config, usage, monkeypatch):
    started, release = threading.Event(), threading.Event()
    monkeypatch.setattr(pipeline_mod, "render_placeholder", _blocking_render(started, release))

    p = _pipeline(config, usage, [plan_json([1])])
    p.generate_plan(PlanRequest(script="Script."))
    scheduler = p.start_rendering(NO_WAIT)
    assert started.wait(5)

    p.reset()
    release.set()
    scheduler.join(5)

    state = p.state()
    assert state.status == PipelineStatus.IDLE
    assert state.plan is None
    assert state.jobs == []


def test_export(config, usage):
    p = _pipeline(config, usage, [plan_json([1, 2])])
    with pytest.raises(NothingToRender):
        p.save_plan()
    p.generate_plan(PlanRequest(script="Script."))
    p.start_rendering(NO_WAIT, background=False)

    plan_path = p.save_plan()
    assert plan_path == config.output_dir / PLAN_FILENAME
    paths = p.download_images()
    assert sorted(x.name for x in paths) == ["scene_1_0.jpg", "scene_2_0.jpg"]
    assert all(x.stat().st_size > 0 for x in paths)


def test_auto_download_saves_into_output_dir(config, usage):
    p = _pipeline(config, usage, [plan_json([1])])
    p.generate_plan(PlanRequest(script="Script."))
    p.start_rendering(GenerationSettings(fixed_wait_time=0, auto_download=True), background=False)
    assert (config.output_dir / "scene_1_0.jpg").exists()


def test_reset_during_plan_generation_discards_plan(config, usage):
    holder = {}

    def generate_content(**kwargs):
        holder["p"].reset()
        return SimpleNamespace(text=plan_json([1]))

    p = Pipeline(
        config,
        client=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content)),
        use_placeholders=True,
        usage=usage,
    )
    holder["p"] = p
    with pytest.raises(PipelineCancelled):
        p.generate_plan(PlanRequest(script="Script."))
    assert p.plan is None
    assert p.status == PipelineStatus.IDLE


def _counting_render(started, release):
    lock = threading.Lock()
    in_flight, peak = [0], [0]

    def render(prompt, aspect_ratio):
        with lock:
            in_flight[0] += 1
            peak[0] = max(peak[0], in_flight[0])
        started.set()
        release.wait(5)
        with lock:
            in_flight[0] -= 1
        return "data:image/jpeg;base64,TEFURQ=="

    return render, peak


def test_restart_after_cancel_keeps_one_render_in_flight(config, usage, monkeypatch):
    started, release = threading.Event(), threading.Event()
    render, peak = _counting_render(started, release)
    monkeypatch.setattr(pipeline_mod, "render_placeholder", render)

    p = _pipeline(config, usage, [plan_json([1, 2])])
    p.generate_plan(PlanRequest(script="Script."))
    p.start_rendering(NO_WAIT)
    assert started.wait(5)

    p.cancel()
    assert p.status == PipelineStatus.IDLE
    with pytest.raises(PipelineBusy):
        p.start_rendering(NO_WAIT, background=False)

    release.set()
    p.wait(5)
    p.start_rendering(NO_WAIT, background=False)

    state = p.state()
    assert peak[0] == 1
    assert state.status == PipelineStatus.COMPLETED
    assert [j.status for j in state.jobs] == [JobStatus.COMPLETED, JobStatus.COMPLETED]


def test_new_plan_after_reset_waits_for_old_render(config, usage, monkeypatch):
    started, release = threading.Event(), threading.Event()
    render, peak = _counting_render(started, release)
    monkeypatch.setattr(pipeline_mod, "render_placeholder", render)

    p = _pipeline(config, usage, [plan_json([1]), plan_json([1, 2])])
    p.generate_plan(PlanRequest(script="Script."))
    p.start_rendering(NO_WAIT)
    assert started.wait(5)

    p.reset()
    p.generate_plan(PlanRequest(script="Another script."))
    with pytest.raises(PipelineBusy):
        p.start_rendering(NO_WAIT)

    release.set()
    p.wait(5)
    assert p.state().jobs[0].status == JobStatus.PENDING

    p.start_rendering(NO_WAIT, background=False)
    state = p.state()
    assert peak[0] == 1
    assert state.status == PipelineStatus.COMPLETED
    assert [j.id for j in state.jobs] == ["1-0", "2-0"]


def test_unexpected_plan_failure_does_not_leave_pipeline_busy(config, usage):
    p = _pipeline(config, usage, [plan_json([1])])
    config.max_words_per_chunk = 0
    with pytest.raises(ValueError):
        p.generate_plan(PlanRequest(script="Script."))

    state = p.state()
    assert state.status == PipelineStatus.ERROR
    assert "max_words" in state.error

    config.max_words_per_chunk = 1500
    p.generate_plan(PlanRequest(script="Script."))
    assert p.status == PipelineStatus.IDLE
    assert p.plan is not None
