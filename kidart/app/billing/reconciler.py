"""Entitlement state machine driven by provider event types.

Each transition is a pure function of the incoming event and the user's
stored entitlement. The table is checked against :class:`WebhookEventType`
at import time so a new event type cannot be added without a transition.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from ..entitlements.catalog import PlanDefinition
from ..entitlements.models import EntitlementUpdate, PlanKey, UserEntitlement
from .models import (
    EventFields,
    IncomingEvent,
    ReconciliationAction,
    ReconciliationResult,
    ReconciliationStatus,
    WebhookEventType,
)

logger = logging.getLogger(__name__)

MISSING_USER = "Missing user_id"
UNKNOWN_PRODUCT = "Unknown product"


@dataclass(frozen=True)
class TransitionInput:
    """Everything a transition may look at."""

    event: IncomingEvent
    fields: EventFields
    user_id: Optional[str]
    plan: Optional[PlanDefinition]
    current: Optional[UserEntitlement]
    now: datetime
    current_unavailable: bool = False


@dataclass(frozen=True)
class Transition:
    """Outcome of a transition: an optional mutation plus what to record."""

    result: ReconciliationResult
    update: Optional[EntitlementUpdate] = None
    record_plan_key: Optional[PlanKey] = None


TransitionFn = Callable[[TransitionInput], Transition]


def _success(
    inp: TransitionInput,
    action: ReconciliationAction,
    plan_key: Optional[PlanKey] = None,
) -> ReconciliationResult:
    return ReconciliationResult(
        status=ReconciliationStatus.SUCCESS,
        action=action,
        user_id=inp.user_id,
        plan_key=plan_key,
    )


def _missing_user(inp: TransitionInput) -> Transition:
    logger.error(
        "No user id in %s event %s; subject keys=%s",
        inp.event.event_type,
        inp.event.id,
        sorted(inp.event.subject),
    )
    return Transition(result=ReconciliationResult.error(MISSING_USER))


def _unknown_product(inp: TransitionInput) -> Transition:
    logger.error(
        "Unknown product %r in %s event %s for user %s",
        inp.fields.product_id,
        inp.event.event_type,
        inp.event.id,
        inp.user_id,
    )
    return Transition(result=ReconciliationResult.error(UNKNOWN_PRODUCT, user_id=inp.user_id))


def _checkout_completed(inp: TransitionInput) -> Transition:
    if not inp.user_id:
        return _missing_user(inp)
    if inp.plan is None:
        return _unknown_product(inp)
    update = EntitlementUpdate(
        is_paid=True, plan_key=inp.plan.key, set_paid_at=True, updated_at=inp.now
    )
    return Transition(
        result=_success(inp, ReconciliationAction.PURCHASED, inp.plan.key),
        update=update,
        record_plan_key=inp.plan.key,
    )


def _subscription_paid(inp: TransitionInput) -> Transition:
    if not inp.user_id:
        return _missing_user(inp)

    plan_key = inp.plan.key if inp.plan else inp.fields.plan_hint
    if plan_key is not None:
        update = EntitlementUpdate(
            is_paid=True, plan_key=plan_key, set_paid_at=True, updated_at=inp.now
        )
        return Transition(
            result=_success(inp, ReconciliationAction.RENEWED, plan_key),
            update=update,
            record_plan_key=plan_key,
        )

    if inp.current_unavailable:
        # Stored plan could not be read; the store rejects paid rows on the free plan.
        logger.warning(
            "Could not determine plan for %s event %s (product=%r); stored plan unreadable, keeping it",
            inp.event.event_type,
            inp.event.id,
            inp.fields.product_id,
        )
        update = EntitlementUpdate(is_paid=True, set_paid_at=True, updated_at=inp.now)
        return Transition(
            result=_success(inp, ReconciliationAction.RENEWED),
            update=update,
        )

    current_plan = inp.current.plan_key if inp.current else PlanKey.FREE
    if current_plan == PlanKey.FREE:
        # A paid flag without a tier would break the entitlement invariant.
        return _unknown_product(inp)

    logger.warning(
        "Could not determine plan for %s event %s (product=%r); keeping %s",
        inp.event.event_type,
        inp.event.id,
        inp.fields.product_id,
        current_plan.value,
    )
    update = EntitlementUpdate(is_paid=True, set_paid_at=True, updated_at=inp.now)
    return Transition(
        result=_success(inp, ReconciliationAction.RENEWED, current_plan),
        update=update,
    )


def _subscription_trialing(inp: TransitionInput) -> Transition:
    if not inp.user_id:
        return _missing_user(inp)
    if inp.plan is None:
        return _unknown_product(inp)
    # paid_at stays untouched: a trial grant is not a payment.
    update = EntitlementUpdate(is_paid=True, plan_key=inp.plan.key, updated_at=inp.now)
    return Transition(
        result=_success(inp, ReconciliationAction.TRIAL_STARTED, inp.plan.key),
        update=update,
        record_plan_key=inp.plan.key,
    )


def _subscription_update(inp: TransitionInput) -> Transition:
    if not inp.user_id:
        return _missing_user(inp)
    if inp.plan is None:
        return _unknown_product(inp)
    update = EntitlementUpdate(
        is_paid=True, plan_key=inp.plan.key, set_paid_at=True, updated_at=inp.now
    )
    return Transition(
        result=_success(inp, ReconciliationAction.PLAN_UPDATED, inp.plan.key),
        update=update,
        record_plan_key=inp.plan.key,
    )


def _subscription_canceled(inp: TransitionInput) -> Transition:
    if not inp.user_id:
        return _missing_user(inp)
    # Access continues until the provider sends subscription.expired.
    plan_key = inp.plan.key if inp.plan else None
    return Transition(
        result=_success(inp, ReconciliationAction.CANCELED_BUT_ACTIVE, plan_key),
        record_plan_key=plan_key,
    )


def _downgrade(inp: TransitionInput, action: ReconciliationAction) -> Transition:
    if not inp.user_id:
        return _missing_user(inp)
    update = EntitlementUpdate(is_paid=False, plan_key=PlanKey.FREE, updated_at=inp.now)
    return Transition(
        result=_success(inp, action, PlanKey.FREE),
        update=update,
        record_plan_key=PlanKey.FREE,
    )


def _subscription_expired(inp: TransitionInput) -> Transition:
    return _downgrade(inp, ReconciliationAction.EXPIRED_AND_DOWNGRADED)


def _refund_created(inp: TransitionInput) -> Transition:
    return _downgrade(inp, ReconciliationAction.REFUNDED)


def record_only(inp: TransitionInput) -> Transition:
    logger.info("Unhandled event type %s (%s); recording only", inp.event.event_type, inp.event.id)
    return Transition(
        result=ReconciliationResult(
            status=ReconciliationStatus.UNHANDLED,
            action=ReconciliationAction.RECORDED,
            user_id=inp.user_id,
        )
    )


TRANSITIONS: Dict[WebhookEventType, TransitionFn] = {
    WebhookEventType.CHECKOUT_COMPLETED: _checkout_completed,
    WebhookEventType.SUBSCRIPTION_ACTIVE: _subscription_paid,
    WebhookEventType.SUBSCRIPTION_PAID: _subscription_paid,
    WebhookEventType.SUBSCRIPTION_TRIALING: _subscription_trialing,
    WebhookEventType.SUBSCRIPTION_UPDATE: _subscription_update,
    WebhookEventType.SUBSCRIPTION_CANCELED: _subscription_canceled,
    WebhookEventType.SUBSCRIPTION_EXPIRED: _subscription_expired,
    WebhookEventType.REFUND_CREATED: _refund_created,
}

# Transitions that read the stored entitlement before deciding.
STATEFUL_EVENT_TYPES = frozenset(
    {WebhookEventType.SUBSCRIPTION_ACTIVE, WebhookEventType.SUBSCRIPTION_PAID}
)

_untransitioned = set(WebhookEventType) - set(TRANSITIONS)
if _untransitioned:  # pragma: no cover - import-time guard
    raise RuntimeError(f"Event types without a transition: {sorted(t.value for t in _untransitioned)}")


def transition_for(event_type: Optional[WebhookEventType]) -> TransitionFn:
    if event_type is None:
        return record_only
    return TRANSITIONS[event_type]


def reconcile(inp: TransitionInput) -> Transition:
    """Compute the transition for ``inp`` without touching storage."""

    return transition_for(inp.event.known_type)(inp)
