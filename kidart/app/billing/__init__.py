"""Billing domain package: webhook verification, normalization and reconciliation."""

from .exceptions import BillingError, MalformedEventError, WebhookConfigurationError
from .models import (
    EventFields,
    IncomingEvent,
    ProcessedEventRecord,
    ReconciliationAction,
    ReconciliationResult,
    ReconciliationStatus,
    WebhookEventType,
)
from .normalizer import extract_fields, normalize_event
from .reconciler import TRANSITIONS, Transition, TransitionInput, reconcile
from .service import BillingRepository, BillingWebhookService
from .signature import compute_signature, verify_signature

__all__ = [
    "BillingError",
    "BillingRepository",
    "BillingWebhookService",
    "EventFields",
    "IncomingEvent",
    "MalformedEventError",
    "ProcessedEventRecord",
    "ReconciliationAction",
    "ReconciliationResult",
    "ReconciliationStatus",
    "TRANSITIONS",
    "Transition",
    "TransitionInput",
    "WebhookConfigurationError",
    "WebhookEventType",
    "compute_signature",
    "extract_fields",
    "normalize_event",
    "reconcile",
    "verify_signature",
]
