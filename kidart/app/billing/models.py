"""Domain models for billing webhook ingestion."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import PlanKey


class WebhookEventType(str, Enum):
    """Provider event types the reconciler has transitions for."""

    CHECKOUT_COMPLETED = "checkout.completed"
    SUBSCRIPTION_ACTIVE = "subscription.active"
    SUBSCRIPTION_PAID = "subscription.paid"
    SUBSCRIPTION_TRIALING = "subscription.trialing"
    SUBSCRIPTION_UPDATE = "subscription.update"
    SUBSCRIPTION_CANCELED = "subscription.canceled"
    SUBSCRIPTION_EXPIRED = "subscription.expired"
    REFUND_CREATED = "refund.created"

    @classmethod
    def parse(cls, value: str) -> Optional["WebhookEventType"]:
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def is_subscription_event(self) -> bool:
        return self.value.startswith("subscription.")


class IncomingEvent(BaseModel):
    """Canonical envelope of a provider event.

    ``event_type`` keeps the raw string so that unknown types survive
    normalization and reach the record-only path.
    """

    id: str = Field(min_length=1)
    event_type: str = Field(min_length=1)
    created_at: Optional[datetime] = None
    subject: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @property
    def known_type(self) -> Optional[WebhookEventType]:
        return WebhookEventType.parse(self.event_type)


class EventFields(BaseModel):
    """Correlation fields extracted from an event subject."""

    user_id: Optional[str] = None
    product_id: Optional[str] = None
    plan_hint: Optional[PlanKey] = None
    order_id: Optional[str] = None
    customer_id: Optional[str] = None
    amount: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class ProcessedEventRecord(BaseModel):
    """Append-only audit row stored for every handled provider event."""

    event_id: str
    event_type: str
    user_id: Optional[str] = None
    plan_key: Optional[PlanKey] = None
    provider_customer_id: Optional[str] = None
    provider_order_id: Optional[str] = None
    amount: Optional[int] = None
    currency: str = "usd"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    processed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ReconciliationStatus(str, Enum):
    """Outcome reported back to the provider in the webhook response body."""

    SUCCESS = "success"
    ERROR = "error"
    UNHANDLED = "unhandled"
    DUPLICATE = "duplicate"


class ReconciliationAction(str, Enum):
    """Entitlement effect applied for a handled event."""

    PURCHASED = "purchased"
    RENEWED = "renewed"
    TRIAL_STARTED = "trial_started"
    PLAN_UPDATED = "plan_updated"
    CANCELED_BUT_ACTIVE = "canceled_but_active"
    EXPIRED_AND_DOWNGRADED = "expired_and_downgraded"
    REFUNDED = "refunded"
    RECORDED = "recorded"


class ReconciliationResult(BaseModel):
    """Structured status for a processed webhook event."""

    status: ReconciliationStatus
    event_id: Optional[str] = Field(default=None, alias="eventId")
    action: Optional[ReconciliationAction] = None
    user_id: Optional[str] = Field(default=None, alias="userId")
    plan_key: Optional[PlanKey] = Field(default=None, alias="planType")
    message: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @classmethod
    def error(cls, message: str, **kwargs: Any) -> "ReconciliationResult":
        return cls(status=ReconciliationStatus.ERROR, message=message, **kwargs)
