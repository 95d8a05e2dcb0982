"""Unit tests for composition planning and prompt compilation."""

from __future__ import annotations

from collections import Counter
from unittest.mock import AsyncMock

import pytest

from app.ai.planner import LEAD_COMPOSITION, PagePlanner, PlanRequest, build_negative_prompt, plan_compositions, verify_composition_variety
from app.jobs.errors import PlanningError, SafetyRejection, ValidationError


def _pages_payload(count: int) -> dict[str, object]:
  return {"pages": [{"pageNumber": index + 1, "sceneBrief": f"Scene {index + 1}", "scenePrompt": f"a friendly dragon doing thing {index + 1}"} for index in range(count)]}


def _request(**overrides: object) -> PlanRequest:
  values: dict[str, object] = {"idea": "a friendly dragon in a garden", "count": 4, "audience": "children", "line_weight": "thick", "complexity": "moderate"}
  values.update(overrides)
  return PlanRequest(**values)


@pytest.mark.parametrize("count", range(1, 31))
def test_compositions_lead_with_full_body_and_never_triple(count: int) -> None:
  sequence = plan_compositions(count)
  assert len(sequence) == count
  assert sequence[0] == LEAD_COMPOSITION
  for index in range(2, count):
    assert not (sequence[index] == sequence[index - 1] == sequence[index - 2])


def test_compositions_follow_target_mix() -> None:
  counts = Counter(plan_compositions(20))
  assert counts == {"full-body": 6, "close-up": 5, "action": 4, "environment": 3, "pattern": 2}


def test_variety_check_rejects_triples() -> None:
  with pytest.raises(PlanningError):
    verify_composition_variety(["close-up", "close-up", "close-up"])
  verify_composition_variety(["close-up", "close-up", "action"])


def test_negative_prompt_adds_audience_terms_once() -> None:
  negative = build_negative_prompt("toddler")
  terms = negative.split(", ")
  assert terms[0] == "shading"
  assert "scary" in terms
  assert len(terms) == len(set(terms))


@pytest.mark.anyio
async def test_plan_compiles_one_spec_per_page() -> None:
  model = AsyncMock()
  model.generate_json.return_value = _pages_payload(4)
  specs = await PagePlanner(model=model).plan(_request())

  assert [spec.page_number for spec in specs] == [1, 2, 3, 4]
  assert specs[0].composition_type == "full-body"
  first = specs[0]
  assert first.compiled_prompt.startswith("line art, black and white, coloring book page")
  assert "pure black line art on a pure white background" in first.compiled_prompt
  assert "bold thick black outlines" in first.compiled_prompt
  assert "shading" in first.negative_prompt
  system = model.generate_json.await_args.kwargs["system"]
  assert "ages 5-8" in system
  assert "Page 1: full-body" in system


@pytest.mark.anyio
async def test_hero_is_written_into_every_page_but_patterns() -> None:
  model = AsyncMock()
  model.generate_json.return_value = _pages_payload(10)
  specs = await PagePlanner(model=model).plan(_request(count=10, hero_description="a small round robot with antenna"))
  for spec in specs:
    assert spec.includes_hero == (spec.composition_type != "pattern")
    assert ("small round robot" in spec.compiled_prompt) == spec.includes_hero


@pytest.mark.anyio
async def test_blocked_idea_never_reaches_model() -> None:
  model = AsyncMock()
  with pytest.raises(SafetyRejection) as excinfo:
    await PagePlanner(model=model).plan(_request(idea="a zombie castle at night", audience="children"))
  assert "zombie" in excinfo.value.issues
  assert excinfo.value.suggestions
  assert excinfo.value.job_message().startswith("Content blocked:")
  model.generate_json.assert_not_awaited()


@pytest.mark.anyio
async def test_moderation_scores_above_threshold_block() -> None:
  model = AsyncMock()
  moderator = AsyncMock()
  moderator.score.return_value = {"violence": 0.3}
  with pytest.raises(SafetyRejection) as excinfo:
    await PagePlanner(model=model, moderator=moderator).plan(_request())
  assert excinfo.value.issues == ["violence"]


@pytest.mark.anyio
async def test_moderation_outage_does_not_block_planning() -> None:
  model = AsyncMock()
  model.generate_json.return_value = _pages_payload(4)
  moderator = AsyncMock()
  moderator.score.side_effect = RuntimeError("moderation down")
  specs = await PagePlanner(model=model, moderator=moderator).plan(_request())
  assert len(specs) == 4


@pytest.mark.anyio
async def test_page_count_mismatch_is_a_planning_error() -> None:
  model = AsyncMock()
  model.generate_json.return_value = _pages_payload(3)
  with pytest.raises(PlanningError):
    await PagePlanner(model=model).plan(_request())


@pytest.mark.anyio
async def test_model_failure_is_a_planning_error() -> None:
  model = AsyncMock()
  model.generate_json.side_effect = RuntimeError("Gemini returned invalid JSON")
  with pytest.raises(PlanningError, match="Failed to generate pages"):
    await PagePlanner(model=model).plan(_request())


@pytest.mark.anyio
@pytest.mark.parametrize(
  "overrides",
  [{"idea": "hi"}, {"idea": "something quite nice"}, {"count": 0}, {"line_weight": "hairline"}, {"model": "dall-e"}],
)
async def test_invalid_requests_raise_validation_error(overrides: dict[str, object]) -> None:
  model = AsyncMock()
  with pytest.raises(ValidationError):
    await PagePlanner(model=model).plan(_request(**overrides))
  model.generate_json.assert_not_awaited()
