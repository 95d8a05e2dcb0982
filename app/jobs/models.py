"""Domain models for asynchronous generation jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

JobStatus = Literal["pending", "processing", "completed", "failed", "cancelled"]
JobItemStatus = Literal["pending", "processing", "completed", "failed"]
JobType = Literal["generation", "hero_creation"]

TERMINAL_JOB_STATUSES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})
TERMINAL_ITEM_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


@dataclass
class JobRecord:
  """Represents one user request fanned out into job items."""

  job_id: str
  owner_id: str
  job_type: JobType
  status: JobStatus
  total_items: int
  created_at: str
  project_id: str | None = None
  completed_items: int = 0
  failed_items: int = 0
  metadata: dict[str, Any] = field(default_factory=dict)
  started_at: str | None = None
  completed_at: str | None = None
  error_message: str | None = None

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_JOB_STATUSES


@dataclass
class JobItemRecord:
  """One unit of work inside a job: a page render or a hero sheet."""

  item_id: str
  job_id: str
  status: JobItemStatus
  created_at: str
  page_id: str | None = None
  hero_id: str | None = None
  retry_count: int = 0
  asset_key: str | None = None
  error_message: str | None = None
  started_at: str | None = None
  completed_at: str | None = None
