from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_calibration_service, require_task_secret
from app.api.models import CalibrationResponse, CalibrationSampleResponse, SelectAnchorRequest, StyleAnchorResponse
from app.services.calibration import StyleCalibrationService

router = APIRouter(prefix="/projects", tags=["projects"], dependencies=[Depends(require_task_secret)])
logger = logging.getLogger(__name__)


@router.post("/{project_id}/calibrate", response_model=CalibrationResponse)
async def calibrate_project(project_id: str, service: StyleCalibrationService = Depends(get_calibration_service)) -> CalibrationResponse:  # noqa: B008
  """Render style calibration samples for a project."""
  try:
    samples = await service.calibrate(project_id)
  except LookupError as exc:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
  return CalibrationResponse(
    project_id=project_id,
    samples=[CalibrationSampleResponse(sample_id=sample.sample_id, variation=sample.variation, object_key=sample.object_key) for sample in samples],
  )


@router.post("/{project_id}/calibrate/select", response_model=StyleAnchorResponse)
async def select_style_anchor(project_id: str, payload: SelectAnchorRequest, service: StyleCalibrationService = Depends(get_calibration_service)) -> StyleAnchorResponse:  # noqa: B008
  """Promote a calibration sample to the project's style anchor."""
  try:
    anchor = await service.select_anchor(project_id, payload.sample_id)
  except LookupError as exc:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
  return StyleAnchorResponse(project_id=project_id, style_anchor_key=anchor.object_key, style_anchor_description=anchor.description)
