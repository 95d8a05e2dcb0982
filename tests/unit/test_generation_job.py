"""Unit tests for the multi-page generation job processor."""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from app.ai.contracts import SynthesisResult
from app.ai.generator import GeneratedArtifact, PageGenerator
from app.ai.planner import CompiledSpec, PagePlanner
from app.ai.safety_gate import ImageSafetyGate
from app.jobs.errors import ConfigurationError, GenerationFailedError, SafetyRejection, TransientServiceError, ValidationError
from app.jobs.generation import GenerationJobProcessor
from app.jobs.models import JobItemRecord, JobRecord
from app.storage.projects_repo import ProjectRecord
from tests.fakes import FakeLedger, FakeStore, InMemoryJobsRepo, InMemoryProjectsRepo, make_line_art_png


def _seed_job(jobs_repo: InMemoryJobsRepo, projects_repo: InMemoryProjectsRepo, *, pages: int = 5, status: str = "pending", completed: int = 0) -> JobRecord:
  projects_repo.projects["proj-1"] = ProjectRecord(
    project_id="proj-1",
    owner_id="user-1",
    name="Dragons",
    audience="children",
    line_weight="thick",
    complexity="moderate",
    trim_size="8.5x11",
    status="generating",
  )
  job = JobRecord(
    job_id="job-1",
    owner_id="user-1",
    job_type="generation",
    status=status,
    total_items=pages,
    completed_items=completed,
    created_at="2026-01-01T00:00:00Z",
    project_id="proj-1",
    metadata={"idea": "a friendly dragon in a garden"},
  )
  items = [
    JobItemRecord(item_id=f"item-{index}", job_id="job-1", status="completed" if index <= completed else "pending", created_at="2026-01-01T00:00:00Z", page_id=f"page-{index}")
    for index in range(1, pages + 1)
  ]
  jobs_repo.add_job(job, items)
  return job


def _planner() -> AsyncMock:
  planner = AsyncMock()

  async def _plan(request):
    return [
      CompiledSpec(page_number=index + 1, scene_brief=f"Scene {index + 1}", composition_type="full-body", compiled_prompt=f"prompt {index + 1}", negative_prompt="shading")
      for index in range(request.count)
    ]

  planner.plan.side_effect = _plan
  return planner


def _artifact() -> GeneratedArtifact:
  return GeneratedArtifact(image_bytes=make_line_art_png(), seed=7, quality_score=100, quality_passed=True, safety_passed=True, attempts=1, source_url="https://replicate.delivery/out.png")


def _generator(fail_prompts: dict[str, int] | None = None, on_call=None) -> AsyncMock:
  """Generator double; fail_prompts maps a compiled prompt to how many calls fail first."""
  generator = AsyncMock()
  calls: Counter[str] = Counter()

  async def _generate(**kwargs):
    prompt = kwargs["compiled_prompt"]
    calls[prompt] += 1
    if on_call is not None:
      await on_call(calls)
    if fail_prompts and calls[prompt] <= fail_prompts.get(prompt, 0):
      raise GenerationFailedError("Flux generation failed: 503", category="AI_GENERATION", attempts=3)
    return _artifact()

  generator.generate.side_effect = _generate
  generator.calls = calls
  return generator


def _processor(jobs_repo, projects_repo, ledger, store, *, planner=None, generator=None) -> GenerationJobProcessor:
  return GenerationJobProcessor(
    jobs_repo=jobs_repo,
    projects_repo=projects_repo,
    ledger=ledger,
    planner=planner or _planner(),
    generator=generator or _generator(),
    store=store,
    batch_size=3,
  )


@pytest.mark.anyio
async def test_five_pages_complete_in_two_batches(jobs_repo: InMemoryJobsRepo, projects_repo: InMemoryProjectsRepo, ledger: FakeLedger, store: FakeStore) -> None:
  job = _seed_job(jobs_repo, projects_repo)
  generator = _generator()
  batch_sizes: list[int] = []
  original_run_batches = GenerationJobProcessor._run_batches

  processor = _processor(jobs_repo, projects_repo, ledger, store, generator=generator)

  async def _spy(self, job, project, items, spec_by_item):
    batch_sizes.extend(len(items[start : start + 3]) for start in range(0, len(items), 3))
    return await original_run_batches(self, job, project, items, spec_by_item)

  processor._run_batches = _spy.__get__(processor)
  result = await processor.process(job)

  assert result.status == "completed"
  assert result.completed_items == 5
  assert result.failed_items == 0
  assert batch_sizes == [3, 2]
  assert generator.generate.await_count == 5
  assert ledger.spends == [("job-1", 5)] * 5
  assert ledger.finalized == [("user-1", "job-1")]
  assert projects_repo.projects["proj-1"].status == "ready"
  assert projects_repo.current_versions == {f"page-{index}": 1 for index in range(1, 6)}
  assert "users/user-1/projects/proj-1/pages/page-1/v1.png" in store.objects
  assert store.objects["users/user-1/projects/proj-1/pages/page-1/thumb.jpg"][1] == "image/jpeg"
  assert all(item.status == "completed" for item in jobs_repo.items.values())


@pytest.mark.anyio
async def test_generation_uses_project_model_and_trim_size(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo, pages=1)
  projects_repo.projects["proj-1"].trim_size = "6x9"
  projects_repo.projects["proj-1"].flux_model = "flux-pro"
  generator = _generator()
  planner = _planner()
  await _processor(jobs_repo, projects_repo, ledger, store, planner=planner, generator=generator).process(job)

  kwargs = generator.generate.await_args.kwargs
  assert kwargs["model"] == "flux-pro"
  assert kwargs["size_class"] == "6x9"
  assert kwargs["audience"] == "children"
  assert planner.plan.await_args.args[0].model == "flux-pro"


@pytest.mark.anyio
async def test_reinvocation_only_processes_pending_items(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo, pages=5, status="processing", completed=2)
  planner = _planner()
  generator = _generator()
  result = await _processor(jobs_repo, projects_repo, ledger, store, planner=planner, generator=generator).process(job)

  assert planner.plan.await_args.args[0].count == 3
  assert generator.generate.await_count == 3
  assert result.status == "completed"
  assert result.completed_items == 5
  assert len(ledger.spends) == 3


@pytest.mark.anyio
async def test_terminal_job_is_left_untouched_but_billing_finalizes(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo, status="completed", completed=5)
  generator = _generator()
  result = await _processor(jobs_repo, projects_repo, ledger, store, generator=generator).process(job)

  assert result.status == "completed"
  generator.generate.assert_not_awaited()
  assert ledger.finalized == [("user-1", "job-1")]


@pytest.mark.anyio
async def test_cancellation_stops_before_next_batch(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo, pages=5)

  async def _cancel_on_first_call(calls: Counter[str]) -> None:
    if sum(calls.values()) == 1:
      await jobs_repo.cancel_job("job-1")

  generator = _generator(on_call=_cancel_on_first_call)
  result = await _processor(jobs_repo, projects_repo, ledger, store, generator=generator).process(job)

  # The in-flight batch finishes; the second batch never starts.
  assert generator.generate.await_count == 3
  assert result.status == "cancelled"
  assert result.completed_items == 3
  assert len(ledger.spends) == 3
  assert ledger.finalized == [("user-1", "job-1")]
  assert [item.status for item in await jobs_repo.list_pending_items("job-1")] == ["pending", "pending"]


@pytest.mark.anyio
async def test_safety_rejected_plan_fails_job_without_generation(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo, pages=10)
  job.metadata["idea"] = "a zombie army in a castle"
  model = AsyncMock()
  generator = _generator()
  processor = _processor(jobs_repo, projects_repo, ledger, store, planner=PagePlanner(model=model), generator=generator)
  result = await processor.process(job)

  assert result.status == "failed"
  assert result.error_message.startswith("Content blocked:")
  assert "zombie" in result.error_message
  model.generate_json.assert_not_awaited()
  generator.generate.assert_not_awaited()
  assert ledger.spends == []
  assert ledger.finalized == [("user-1", "job-1")]


@pytest.mark.anyio
async def test_safety_rejection_from_planner_double_is_recorded(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo)
  planner = AsyncMock()
  planner.plan.side_effect = SafetyRejection("Content not suitable for children", issues=["violence"], suggestions=['Try: "space adventure with rockets"'])
  result = await _processor(jobs_repo, projects_repo, ledger, store, planner=planner).process(job)
  assert result.status == "failed"
  assert result.error_message == 'Content blocked: Content not suitable for children. Issues: violence. Suggestions: Try: "space adventure with rockets"'


@pytest.mark.anyio
async def test_unexpected_error_fails_job_and_still_finalizes(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo)
  projects_repo.get_project = AsyncMock(side_effect=RuntimeError("database unavailable"))

  with pytest.raises(RuntimeError):
    await _processor(jobs_repo, projects_repo, ledger, store).process(job)

  assert jobs_repo.jobs["job-1"].status == "failed"
  assert jobs_repo.jobs["job-1"].error_message == "database unavailable"
  assert ledger.finalized == [("user-1", "job-1")]


@pytest.mark.anyio
async def test_missing_idea_fails_job(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo)
  job.metadata.clear()
  with pytest.raises(ConfigurationError, match="missing required"):
    await _processor(jobs_repo, projects_repo, ledger, store).process(job)
  assert jobs_repo.jobs["job-1"].status == "failed"
  assert ledger.finalized == [("user-1", "job-1")]


@pytest.mark.anyio
async def test_failed_item_is_requeued_for_the_next_invocation(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo, pages=3)
  generator = _generator(fail_prompts={"prompt 2": 1})
  processor = _processor(jobs_repo, projects_repo, ledger, store, generator=generator)

  first = await processor.process(job)
  item = jobs_repo.items["item-2"]
  assert first.status == "processing"
  assert first.completed_items == 2
  assert item.status == "pending"
  assert item.retry_count == 1
  assert item.error_message == "Retry 1: Flux generation failed: 503"
  assert generator.generate.await_count == 3
  assert projects_repo.projects["proj-1"].status == "generating"
  assert ledger.finalized == []

  second = await processor.process(job)
  assert second.status == "completed"
  assert second.completed_items == 3
  assert generator.generate.await_count == 4
  assert jobs_repo.items["item-2"].status == "completed"
  assert jobs_repo.items["item-2"].retry_count == 1
  assert len(ledger.spends) == 3
  assert ledger.finalized == [("user-1", "job-1")]
  assert projects_repo.projects["proj-1"].status == "ready"


@pytest.mark.anyio
async def test_item_fails_permanently_after_retry_limit(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo, pages=1)
  generator = _generator(fail_prompts={"prompt 1": 99})
  processor = _processor(jobs_repo, projects_repo, ledger, store, generator=generator)

  for expected_retry in (1, 2):
    result = await processor.process(job)
    assert result.status == "processing"
    assert jobs_repo.items["item-1"].error_message == f"Retry {expected_retry}: Flux generation failed: 503"

  result = await processor.process(job)
  item = jobs_repo.items["item-1"]
  assert generator.calls["prompt 1"] == 3
  assert item.status == "failed"
  assert item.retry_count == 2
  assert item.error_message == "Flux generation failed: 503"
  assert result.status == "failed"
  assert result.failed_items == 1
  assert ledger.spends == []
  assert ledger.finalized == [("user-1", "job-1")]


@pytest.mark.anyio
async def test_job_fails_when_every_item_fails(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo, pages=2)
  generator = _generator(fail_prompts={"prompt 1": 99, "prompt 2": 99})
  processor = _processor(jobs_repo, projects_repo, ledger, store, generator=generator)
  for _ in range(3):
    result = await processor.process(job)

  assert result.status == "failed"
  assert result.failed_items == 2
  assert ledger.spends == []
  assert ledger.finalized == [("user-1", "job-1")]


@pytest.mark.anyio
@pytest.mark.parametrize("error", [ValidationError("Unsupported trim size: 5x5"), ConfigurationError("Unsupported Flux model: flux-x")])
async def test_bad_input_fails_item_without_requeue(jobs_repo, projects_repo, ledger, store, error: Exception) -> None:
  job = _seed_job(jobs_repo, projects_repo, pages=2)

  async def _generate(**kwargs):
    if kwargs["compiled_prompt"] == "prompt 1":
      raise error
    return _artifact()

  generator = AsyncMock()
  generator.generate.side_effect = _generate
  result = await _processor(jobs_repo, projects_repo, ledger, store, generator=generator).process(job)

  item = jobs_repo.items["item-1"]
  assert item.status == "failed"
  assert item.retry_count == 0
  assert item.error_message == str(error)
  assert result.status == "completed"
  assert result.failed_items == 1
  assert generator.generate.await_count == 2


@pytest.mark.anyio
async def test_item_without_page_fails_without_generation(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo, pages=1)
  jobs_repo.items["item-1"] = replace(jobs_repo.items["item-1"], page_id=None)
  generator = _generator()
  result = await _processor(jobs_repo, projects_repo, ledger, store, generator=generator).process(job)

  assert result.status == "failed"
  assert jobs_repo.items["item-1"].retry_count == 0
  assert jobs_repo.items["item-1"].error_message == "Job item item-1 has no page"
  generator.generate.assert_not_awaited()


@pytest.mark.anyio
async def test_bookkeeping_error_after_spend_never_rerenders_the_page(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo, pages=1)
  original_increment = jobs_repo.increment_job_progress
  seen: list[bool] = []

  async def _flaky_increment(job_id: str, *, succeeded: bool):
    seen.append(succeeded)
    if len(seen) == 1:
      raise ConnectionResetError("connection reset")
    return await original_increment(job_id, succeeded=succeeded)

  jobs_repo.increment_job_progress = _flaky_increment
  generator = _generator()
  result = await _processor(jobs_repo, projects_repo, ledger, store, generator=generator).process(job)

  assert generator.generate.await_count == 1
  assert ledger.spends == [("job-1", 5)]
  assert len(projects_repo.versions) == 1
  item = jobs_repo.items["item-1"]
  assert item.status == "completed"
  assert item.retry_count == 0
  assert result.status == "completed"
  assert ledger.finalized == [("user-1", "job-1")]


@pytest.mark.anyio
async def test_failure_recording_error_does_not_abandon_sibling_items(jobs_repo, projects_repo, store) -> None:
  job = _seed_job(jobs_repo, projects_repo, pages=2)
  events: list[str] = []

  class _OrderedLedger(FakeLedger):
    async def record_spend(self, job_id: str, amount: int) -> None:
      events.append("spend")
      await super().record_spend(job_id, amount)

    async def finalize(self, user_id: str, job_id: str) -> int:
      events.append("finalize")
      return await super().finalize(user_id, job_id)

  async def _generate(**kwargs):
    if kwargs["compiled_prompt"] == "prompt 1":
      raise GenerationFailedError("Flux generation failed: 503", category="AI_GENERATION", attempts=3)
    await asyncio.sleep(0.05)
    return _artifact()

  original_update = jobs_repo.update_job_item

  async def _update(item_id: str, **kwargs):
    if kwargs.get("status") == "pending":
      raise ConnectionResetError("connection reset")
    return await original_update(item_id, **kwargs)

  jobs_repo.update_job_item = _update
  generator = AsyncMock()
  generator.generate.side_effect = _generate
  result = await _processor(jobs_repo, projects_repo, _OrderedLedger(), store, generator=generator).process(job)

  assert events == ["spend", "finalize"]
  assert jobs_repo.items["item-2"].status == "completed"
  assert result.status == "completed"
  assert result.completed_items == 1


@pytest.mark.anyio
async def test_cancel_during_final_batch_leaves_project_unready(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo, pages=3)

  async def _cancel_on_first_call(calls: Counter[str]) -> None:
    if sum(calls.values()) == 1:
      await jobs_repo.cancel_job("job-1")

  generator = _generator(on_call=_cancel_on_first_call)
  result = await _processor(jobs_repo, projects_repo, ledger, store, generator=generator).process(job)

  assert generator.generate.await_count == 3
  assert result.status == "cancelled"
  assert projects_repo.projects["proj-1"].status == "generating"
  assert ledger.finalized == [("user-1", "job-1")]


@pytest.mark.anyio
async def test_transient_synthesis_failures_are_absorbed_by_generator(jobs_repo, projects_repo, ledger, store) -> None:
  job = _seed_job(jobs_repo, projects_repo, pages=4)
  projects_repo.projects["proj-1"].audience = "adult"
  projects_repo.projects["proj-1"].trim_size = "8.5x8.5"
  attempts: Counter[str] = Counter()

  async def _synthesize(**kwargs):
    attempts[kwargs["prompt"]] += 1
    if kwargs["prompt"] == "prompt 2" and attempts["prompt 2"] <= 2:
      raise TransientServiceError("Flux generation failed: 503", category="AI_GENERATION")
    return SynthesisResult(image_url="https://replicate.delivery/out.png", seed=5)

  synthesis = AsyncMock()
  synthesis.generate.side_effect = _synthesize
  synthesis.download.return_value = make_line_art_png()
  generator = PageGenerator(synthesis=synthesis, safety_gate=ImageSafetyGate(AsyncMock()), sleep=AsyncMock())
  result = await _processor(jobs_repo, projects_repo, ledger, store, generator=generator).process(job)

  assert attempts["prompt 2"] == 3
  assert result.status == "completed"
  assert result.completed_items == 4
  assert jobs_repo.items["item-2"].retry_count == 0
  assert len(ledger.spends) == 4
