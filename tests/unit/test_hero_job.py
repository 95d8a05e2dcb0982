"""Unit tests for hero reference sheet jobs."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from app.ai.generator import GeneratedArtifact
from app.ai.hero_prompt import HERO_MODEL, HERO_SIZE_CLASS
from app.jobs.errors import ConfigurationError, GenerationFailedError
from app.jobs.hero import HeroJobProcessor
from app.jobs.models import JobItemRecord, JobRecord
from tests.fakes import make_line_art_png


def _seed(jobs_repo, metadata: dict[str, object]) -> JobRecord:
  job = JobRecord(job_id="hero-job-1", owner_id="user-9", job_type="hero_creation", status="pending", total_items=1, created_at="2026-01-01T00:00:00Z", metadata=metadata)
  jobs_repo.add_job(job, [JobItemRecord(item_id="hero-item-1", job_id="hero-job-1", status="pending", created_at="2026-01-01T00:00:00Z")])
  return job


def _generator() -> AsyncMock:
  generator = AsyncMock()
  generator.generate.return_value = GeneratedArtifact(
    image_bytes=make_line_art_png(), seed=11, quality_score=100, quality_passed=True, safety_passed=True, attempts=1, source_url="https://replicate.delivery/hero.png"
  )
  return generator


def _processor(jobs_repo, heroes_repo, ledger, store, generator, model=None) -> HeroJobProcessor:
  if model is None:
    model = AsyncMock()
    model.generate_text.return_value = "a cheerful dragon with round wings and a short tail"
  return HeroJobProcessor(jobs_repo=jobs_repo, heroes_repo=heroes_repo, ledger=ledger, model=model, generator=generator, store=store)


@pytest.mark.anyio
async def test_hero_job_creates_hero_and_completes(jobs_repo, heroes_repo, ledger, store) -> None:
  job = _seed(jobs_repo, {"name": "Sparky", "description": "a friendly baby dragon", "audience": "children"})
  generator = _generator()
  result = await _processor(jobs_repo, heroes_repo, ledger, store, generator).process(job)

  assert result.status == "completed"
  kwargs = generator.generate.await_args.kwargs
  assert kwargs["model"] == HERO_MODEL
  assert kwargs["size_class"] == HERO_SIZE_CLASS
  assert "round wings" in kwargs["compiled_prompt"]

  item = jobs_repo.items["hero-item-1"]
  hero = heroes_repo.heroes[item.hero_id]
  assert item.status == "completed"
  assert item.asset_key == f"users/user-9/heroes/{hero.hero_id}/reference.png"
  assert hero.name == "Sparky"
  assert f"users/user-9/heroes/{hero.hero_id}/thumbnail.jpg" in store.objects
  assert jobs_repo.jobs["hero-job-1"].completed_items == 1
  assert ledger.spends == [("hero-job-1", 8)]
  assert ledger.finalized == [("user-9", "hero-job-1")]


@pytest.mark.anyio
async def test_hero_prompt_falls_back_to_description(jobs_repo, heroes_repo, ledger, store) -> None:
  job = _seed(jobs_repo, {"name": "Sparky", "description": "a friendly baby dragon", "audience": "adult"})
  model = AsyncMock()
  model.generate_text.side_effect = RuntimeError("planner unavailable")
  generator = _generator()
  await _processor(jobs_repo, heroes_repo, ledger, store, generator, model).process(job)
  assert "a friendly baby dragon" in generator.generate.await_args.kwargs["compiled_prompt"]


@pytest.mark.anyio
async def test_unsafe_character_is_blocked_before_generation(jobs_repo, heroes_repo, ledger, store) -> None:
  job = _seed(jobs_repo, {"name": "Grim", "description": "a zombie knight", "audience": "children"})
  generator = _generator()
  result = await _processor(jobs_repo, heroes_repo, ledger, store, generator).process(job)

  assert result.status == "failed"
  assert result.error_message.startswith("Content blocked: Character not suitable")
  generator.generate.assert_not_awaited()
  assert jobs_repo.items["hero-item-1"].status == "failed"
  assert ledger.spends == []
  assert ledger.finalized == [("user-9", "hero-job-1")]


@pytest.mark.anyio
async def test_generation_failure_fails_job(jobs_repo, heroes_repo, ledger, store) -> None:
  job = _seed(jobs_repo, {"name": "Sparky", "description": "a friendly baby dragon", "audience": "teen"})
  generator = _generator()
  generator.generate.side_effect = GenerationFailedError("Flux generation failed: 500", category="AI_GENERATION", attempts=3)
  result = await _processor(jobs_repo, heroes_repo, ledger, store, generator).process(job)

  assert result.status == "failed"
  assert result.failed_items == 1
  assert heroes_repo.heroes == {}
  assert ledger.finalized == [("user-9", "hero-job-1")]


@pytest.mark.anyio
@pytest.mark.parametrize(
  "metadata",
  [{"description": "a dragon", "audience": "children"}, {"name": "Sparky", "description": "a dragon", "audience": "grown-ups"}],
)
async def test_invalid_metadata_fails_job(jobs_repo, heroes_repo, ledger, store, metadata: dict[str, object]) -> None:
  job = _seed(jobs_repo, metadata)
  with pytest.raises(ConfigurationError):
    await _processor(jobs_repo, heroes_repo, ledger, store, _generator()).process(job)
  assert jobs_repo.jobs["hero-job-1"].status == "failed"
  assert ledger.finalized == [("user-9", "hero-job-1")]


@pytest.mark.anyio
async def test_unexpected_error_is_reraised_after_failing_job(jobs_repo, heroes_repo, ledger, store) -> None:
  job = _seed(jobs_repo, {"name": "Sparky", "description": "a friendly baby dragon", "audience": "adult"})
  store.upload = AsyncMock(side_effect=RuntimeError("bucket missing"))
  with pytest.raises(RuntimeError, match="bucket missing"):
    await _processor(jobs_repo, heroes_repo, ledger, store, _generator()).process(job)
  assert jobs_repo.jobs["hero-job-1"].status == "failed"
  assert jobs_repo.jobs["hero-job-1"].error_message == "bucket missing"


@pytest.mark.anyio
async def test_reinvoked_hero_job_with_completed_item_is_not_rebilled(jobs_repo, heroes_repo, ledger, store) -> None:
  job = JobRecord(
    job_id="hero-job-1",
    owner_id="user-9",
    job_type="hero_creation",
    status="processing",
    total_items=1,
    completed_items=1,
    created_at="2026-01-01T00:00:00Z",
    metadata={"name": "Sparky", "description": "a friendly baby dragon", "audience": "children"},
  )
  done = JobItemRecord(item_id="hero-item-1", job_id="hero-job-1", status="completed", created_at="2026-01-01T00:00:00Z", hero_id="hero-1")
  jobs_repo.add_job(job, [done])
  generator = _generator()
  result = await _processor(jobs_repo, heroes_repo, ledger, store, generator).process(job)

  assert result.status == "completed"
  generator.generate.assert_not_awaited()
  assert heroes_repo.heroes == {}
  assert ledger.spends == []
  assert ledger.finalized == [("user-9", "hero-job-1")]
