"""Webhook pipeline: idempotency guard, reconciliation, recording and backfill."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Tuple

from ..entitlements.catalog import PlanResolver
from ..entitlements.models import EntitlementUpdate, PlanKey, UserEntitlement
from .models import (
    IncomingEvent,
    ProcessedEventRecord,
    ReconciliationResult,
    ReconciliationStatus,
    WebhookEventType,
)
from .normalizer import extract_fields
from .reconciler import STATEFUL_EVENT_TYPES, TransitionInput, reconcile

logger = logging.getLogger(__name__)

DATABASE_UPDATE_FAILED = "Database update failed"


class BillingRepository(Protocol):
    """Persistence operations required by the webhook service.

    Lookups return ``None`` for "no row found"; any raised exception is a
    genuine store fault.
    """

    def get_processed_event(self, event_id: str) -> Optional[ProcessedEventRecord]:
        ...

    def record_processed_event(self, record: ProcessedEventRecord) -> bool:
        ...

    def find_user_by_order_id(self, order_id: str) -> Optional[str]:
        ...

    def get_user_entitlement(self, user_id: str) -> Optional[UserEntitlement]:
        ...

    def apply_entitlement_update(
        self, user_id: str, update: EntitlementUpdate
    ) -> Optional[UserEntitlement]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BillingWebhookService:
    """Reconciles verified provider events into user entitlement state."""

    repository: BillingRepository
    plan_resolver: PlanResolver
    clock: Callable[[], datetime] = field(default=_utcnow)

    def process_event(self, event: IncomingEvent) -> ReconciliationResult:
        """Run the full pipeline for a verified, normalized event."""

        if self.is_duplicate(event.id):
            logger.info("Event %s already processed; skipping", event.id)
            return ReconciliationResult(
                status=ReconciliationStatus.DUPLICATE,
                event_id=event.id,
                message="Event already processed",
            )
        return self.reconcile(event)

    def is_duplicate(self, event_id: str) -> bool:
        """Return whether ``event_id`` is already in the event log.

        Lookup faults fail open: a rare double delivery is preferred over a
        lost event, and every transition is idempotent by value.
        """

        try:
            existing = self.repository.get_processed_event(event_id)
        except Exception:
            logger.exception("Idempotency lookup failed for event %s; continuing", event_id)
            return False
        return existing is not None

    def find_user_by_order_id(self, order_id: str) -> Optional[str]:
        """Recover the owning user of ``order_id`` from earlier events."""

        try:
            user_id = self.repository.find_user_by_order_id(order_id)
        except Exception:
            logger.exception("Backfill lookup failed for order %s", order_id)
            return None
        if user_id:
            logger.info("Backfilled user %s from order %s", user_id, order_id)
        else:
            logger.warning("No earlier event links order %s to a user", order_id)
        return user_id

    def record_event(
        self,
        event: IncomingEvent,
        user_id: Optional[str] = None,
        plan_key: Optional[PlanKey] = None,
        *,
        order_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        amount: Optional[int] = None,
    ) -> bool:
        """Append ``event`` to the event log. Store failures are logged only."""

        record = ProcessedEventRecord(
            event_id=event.id,
            event_type=event.event_type,
            user_id=user_id,
            plan_key=plan_key,
            provider_customer_id=customer_id,
            provider_order_id=order_id,
            amount=amount,
            metadata=event.subject,
            processed_at=self.clock(),
        )
        try:
            stored = self.repository.record_processed_event(record)
        except Exception:
            logger.exception("Failed to record payment event %s", event.id)
            return False
        if not stored:
            logger.info("Payment event %s was already recorded", event.id)
        return stored

    def reconcile(self, event: IncomingEvent) -> ReconciliationResult:
        """Apply the transition for ``event`` and record it."""

        event_type = event.known_type
        fields = extract_fields(event)

        user_id = fields.user_id
        if not user_id and event_type == WebhookEventType.REFUND_CREATED and fields.order_id:
            user_id = self.find_user_by_order_id(fields.order_id)

        plan = self.plan_resolver.resolve(fields.product_id)
        current = None
        current_unavailable = False
        if user_id and event_type in STATEFUL_EVENT_TYPES:
            current, current_unavailable = self._load_entitlement(user_id)

        transition = reconcile(
            TransitionInput(
                event=event,
                fields=fields,
                user_id=user_id,
                plan=plan,
                current=current,
                now=self.clock(),
                current_unavailable=current_unavailable,
            )
        )

        result = transition.result
        if transition.update is not None and user_id:
            if not self._apply(user_id, transition.update, event):
                result = ReconciliationResult.error(
                    DATABASE_UPDATE_FAILED, user_id=user_id, plan_key=result.plan_key
                )

        self.record_event(
            event,
            user_id,
            transition.record_plan_key,
            order_id=fields.order_id,
            customer_id=fields.customer_id,
            amount=fields.amount,
        )
        return result.model_copy(update={"event_id": event.id})

    def _load_entitlement(self, user_id: str) -> Tuple[Optional[UserEntitlement], bool]:
        """Return the stored entitlement and whether the read itself failed."""

        try:
            return self.repository.get_user_entitlement(user_id), False
        except Exception:
            logger.exception("Failed to load entitlement for user %s", user_id)
            return None, True

    def _apply(self, user_id: str, update: EntitlementUpdate, event: IncomingEvent) -> bool:
        try:
            updated = self.repository.apply_entitlement_update(user_id, update)
        except Exception:
            logger.exception(
                "Failed to update entitlement for user %s from event %s", user_id, event.id
            )
            return False
        if updated is None:
            logger.warning(
                "No entitlement row for user %s; event %s left state unchanged",
                user_id,
                event.id,
            )
        else:
            logger.info(
                "Entitlement for user %s is now paid=%s plan=%s (event %s)",
                user_id,
                updated.is_paid,
                updated.plan_key.value,
                event.id,
            )
        return True


__all__ = ["BillingRepository", "BillingWebhookService"]
