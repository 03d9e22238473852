"""Inbound billing-provider webhook endpoint.

Response taxonomy:
  200  accepted: processed, duplicate, or recorded without a mutation
  400  body is not a JSON event envelope
  401  signature missing or invalid
  500  webhook secret not configured, or an unexpected internal fault
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ..billing import (
    BillingWebhookService,
    MalformedEventError,
    ReconciliationResult,
    WebhookConfigurationError,
    normalize_event,
    verify_signature,
)
from ..config import BillingConfig
from ..schemas.billing import ErrorResponse
from ..services.billing import get_billing_config, get_webhook_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@router.post(
    "/creem",
    response_model=ReconciliationResult,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
)
async def receive_creem_webhook(
    request: Request,
    config: BillingConfig = Depends(get_billing_config),
    service: BillingWebhookService = Depends(get_webhook_service),
) -> JSONResponse:
    raw_body = await request.body()
    logger.info("Webhook received (%d bytes)", len(raw_body))

    signature = request.headers.get(config.signature_header)
    if not signature:
        logger.warning("Missing %s header", config.signature_header)
        return _error(status.HTTP_401_UNAUTHORIZED, "Missing signature")

    try:
        secret = config.require_webhook_secret()
    except WebhookConfigurationError as exc:
        logger.error("Cannot verify webhook: %s", exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Webhook secret not configured")

    if not verify_signature(raw_body, signature, secret):
        logger.warning("Invalid webhook signature")
        return _error(status.HTTP_401_UNAUTHORIZED, "Invalid signature")

    try:
        event = normalize_event(raw_body)
    except MalformedEventError as exc:
        logger.warning("Rejected malformed webhook payload: %s", exc)
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    logger.info("Processing %s event %s", event.event_type, event.id)
    try:
        # Runs to completion in a worker thread even if the client disconnects.
        result = await run_in_threadpool(service.process_event, event)
    except Exception:
        logger.exception("Webhook processing error for event %s", event.id)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    logger.info(
        "Event %s finished status=%s action=%s",
        event.id,
        result.status.value,
        result.action.value if result.action else None,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=result.model_dump(mode="json", by_alias=True, exclude_none=True),
    )
