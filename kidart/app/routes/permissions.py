"""Generation permission check consumed by the upload and transform pages."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ..entitlements import EntitlementService, GenerationPermission
from ..schemas.billing import ErrorResponse, PermissionCheckRequest
from ..services.billing import get_entitlement_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["entitlements"])


@router.post(
    "/check-permissions",
    response_model=GenerationPermission,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
)
def check_permissions(
    payload: PermissionCheckRequest,
    service: EntitlementService = Depends(get_entitlement_service),
):
    user_id = (payload.user_id or "").strip()
    if not user_id:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(error="User ID is required").model_dump(),
        )

    try:
        return service.check_generation_permission(user_id)
    except Exception:
        logger.exception("Permission check failed for user %s", user_id)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error="Failed to check permissions").model_dump(),
        )
