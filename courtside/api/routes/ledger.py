"""Completed match history and cost summary route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from courtside.models.schemas import CompletedMatchRecord, CostSummaryResponse
from courtside.services.rotation_service import RotationService, get_rotation_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/api/rotation/history",
    response_model=List[CompletedMatchRecord],
    response_model_by_alias=True,
)
async def get_history(service: RotationService = Depends(get_rotation_service)):
    """Completed matches, newest first (voided ones included)."""
    return service.history()


@router.get(
    "/api/rotation/history/{record_id}",
    response_model=CompletedMatchRecord,
    response_model_by_alias=True,
)
async def get_history_record(record_id: str, service: RotationService = Depends(get_rotation_service)):
    record = service.find_record(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Completed match {record_id} not found")
    return record


@router.get(
    "/api/rotation/summary",
    response_model=CostSummaryResponse,
    response_model_by_alias=True,
)
async def get_cost_summary(
    total_court_cost: float = Query(0.0, ge=0),
    cost_per_shuttle: float = Query(0.0, ge=0),
    service: RotationService = Depends(get_rotation_service),
):
    """
    Split court and shuttle costs across everyone who took part.

    Args:
        total_court_cost: Total paid for the courts
        cost_per_shuttle: Price of one shuttlecock
    """
    try:
        return service.cost_summary(total_court_cost, cost_per_shuttle)
    except Exception as e:
        logger.error(f"Error building cost summary: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error building cost summary: {str(e)}")
