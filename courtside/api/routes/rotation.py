"""Rotation state and operation route handlers."""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import TypeAdapter, ValidationError

from courtside.api.routes import limiter
from courtside.models.schemas import (
    AvailabilityResponse,
    Operation,
    OperationResponse,
    RotationSnapshot,
)
from courtside.services import settings_service
from courtside.services.rotation_service import RotationService, get_rotation_service
from courtside.services.snapshot_service import to_snapshot

logger = logging.getLogger(__name__)
router = APIRouter()

operation_adapter = TypeAdapter(Operation)


@router.get("/api/rotation", response_model=RotationSnapshot, response_model_by_alias=True)
async def get_rotation(service: RotationService = Depends(get_rotation_service)):
    """Current rotation snapshot."""
    return service.snapshot()


@router.post("/api/rotation/operations", response_model=OperationResponse, response_model_by_alias=True)
@limiter.limit(settings_service.get_operations_rate_limit())
async def apply_operation(
    request: Request,
    service: RotationService = Depends(get_rotation_service),
):
    """
    Apply one operation to the live rotation.

    The body is a single operation object discriminated by ``type``. A rejected
    operation is not an error: the response carries ``applied=false``, the
    reason and the unchanged state.
    """
    try:
        body = await request.json()
        operation = operation_adapter.validate_python(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Request body must be JSON")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    try:
        result = await service.apply(operation)
    except Exception as e:
        logger.error(f"Error applying {operation.type}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error applying operation: {str(e)}")
    return OperationResponse(
        applied=result.applied,
        reason=result.reason,
        state=to_snapshot(result.state),
    )


@router.get(
    "/api/rotation/availability",
    response_model=AvailabilityResponse,
    response_model_by_alias=True,
)
async def get_availability(service: RotationService = Depends(get_rotation_service)):
    """Free courts and whether an automatic match can be created now."""
    return service.availability()
