"""Request and response models for the job API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr

JobStatus = Literal["pending", "processing", "completed", "failed", "cancelled"]
JobItemStatus = Literal["pending", "processing", "completed", "failed"]


class TaskPayload(BaseModel):
  """Internal hand-off of a job id to the processor."""

  job_id: StrictStr = Field(min_length=1)


class TaskAcceptedResponse(BaseModel):
  status: Literal["accepted"] = "accepted"
  job_id: StrictStr


class JobItemStatusResponse(BaseModel):
  """Status of one job item."""

  item_id: StrictStr
  status: JobItemStatus
  page_id: StrictStr | None = None
  hero_id: StrictStr | None = None
  retry_count: int = 0
  asset_key: StrictStr | None = None
  error_message: StrictStr | None = None


class JobStatusResponse(BaseModel):
  """Status payload for a generation or hero job."""

  job_id: StrictStr
  job_type: Literal["generation", "hero_creation"]
  status: JobStatus
  project_id: StrictStr | None = None
  total_items: int
  completed_items: int
  failed_items: int
  progress: float = Field(ge=0.0, le=100.0)
  error_message: StrictStr | None = None
  created_at: StrictStr
  started_at: StrictStr | None = None
  completed_at: StrictStr | None = None
  items: list[JobItemStatusResponse] = Field(default_factory=list)
  model_config = ConfigDict(populate_by_name=True)


class CalibrationSampleResponse(BaseModel):
  sample_id: StrictStr
  variation: StrictStr
  object_key: StrictStr


class CalibrationResponse(BaseModel):
  """Samples rendered for the user to choose a style anchor from."""

  project_id: StrictStr
  samples: list[CalibrationSampleResponse]


class SelectAnchorRequest(BaseModel):
  sample_id: Literal["1", "2", "3", "4"]


class StyleAnchorResponse(BaseModel):
  project_id: StrictStr
  style_anchor_key: StrictStr
  style_anchor_description: StrictStr
