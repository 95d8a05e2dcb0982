"""Typed failures raised across the generation pipeline."""

from __future__ import annotations

from typing import Literal

ErrorCategory = Literal["NETWORK", "AI_GENERATION", "UNKNOWN"]


class PipelineError(Exception):
  """Base class for pipeline failures; category is for observability only."""

  category: ErrorCategory = "UNKNOWN"


class ValidationError(PipelineError):
  """Input has the wrong shape. Never retried."""


class ConfigurationError(PipelineError):
  """Job metadata is missing a field the job type requires."""


class TransientServiceError(PipelineError):
  """A remote call failed in a way that may succeed on another attempt."""

  def __init__(self, message: str, *, category: ErrorCategory = "NETWORK") -> None:
    super().__init__(message)
    self.category = category


class ImageProcessingError(PipelineError):
  """Image bytes could not be decoded or post-processed."""


class SafetyRejection(PipelineError):
  """Content was blocked by a safety layer."""

  def __init__(self, message: str, *, issues: list[str] | None = None, suggestions: list[str] | None = None) -> None:
    super().__init__(message)
    self.issues = list(issues or [])
    self.suggestions = list(suggestions or [])

  def job_message(self) -> str:
    """Render the stored job error, tagged so callers can tell it apart."""
    message = f"Content blocked: {self}"
    if self.issues:
      message += f". Issues: {', '.join(self.issues)}"
    if self.suggestions:
      message += f". Suggestions: {' '.join(self.suggestions)}"
    return message


class QualityShortfall(PipelineError):
  """An image missed one or more quality checks. Only flags the artifact for review."""

  def __init__(self, failed_checks: list[str], score: int) -> None:
    super().__init__(f"Quality checks failed ({score}/100): {', '.join(failed_checks)}")
    self.failed_checks = list(failed_checks)
    self.score = score


class PlanningError(PipelineError):
  """The planner could not produce compiled specs."""

  category: ErrorCategory = "AI_GENERATION"


class GenerationFailedError(PipelineError):
  """Every generation attempt for one item failed."""

  def __init__(self, message: str, *, category: ErrorCategory, attempts: int) -> None:
    super().__init__(message)
    self.category = category
    self.attempts = attempts
