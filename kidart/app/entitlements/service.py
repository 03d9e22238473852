"""Service answering "may this user generate?" from stored entitlements."""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

from ..feature_gates.quota import evaluate_generation_quota
from .catalog import get_plan_limit
from .models import BillingCycle, GenerationPermission, UserEntitlement

logger = logging.getLogger(__name__)


class EntitlementRepository(Protocol):
    """Data access layer for entitlement rows and daily usage counts."""

    def get_user_entitlement(self, user_id: str) -> Optional[UserEntitlement]:
        ...

    def sum_generations(self, user_id: str, *, start: date, end: date) -> int:
        ...


def billing_cycle_for(
    entitlement: UserEntitlement,
    today: date,
    *,
    cycle_days: int = 30,
) -> BillingCycle:
    """Return the usage window containing ``today``.

    Paid users count in fixed ``cycle_days`` windows anchored at ``paid_at``;
    users without a payment date use the calendar month.
    """

    if entitlement.paid_at is not None:
        anchor = entitlement.paid_at.astimezone(timezone.utc).date()
        elapsed = max((today - anchor).days, 0)
        start = anchor + timedelta(days=(elapsed // cycle_days) * cycle_days)
    else:
        start = today.replace(day=1)
    return BillingCycle(start=start, end=start + timedelta(days=cycle_days))


class EntitlementService:
    """Resolves a user's plan, billing cycle and remaining generations."""

    def __init__(
        self,
        repository: EntitlementRepository,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        cycle_days: int = 30,
    ) -> None:
        self._repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._cycle_days = max(cycle_days, 1)

    def get_entitlement(self, user_id: str) -> UserEntitlement:
        """Return the stored entitlement, defaulting to the free plan."""

        entitlement = self._repository.get_user_entitlement(user_id)
        if entitlement is None:
            return UserEntitlement(user_id=user_id, updated_at=self._clock())
        return entitlement

    def check_generation_permission(self, user_id: str) -> GenerationPermission:
        entitlement = self.get_entitlement(user_id)
        cycle = billing_cycle_for(
            entitlement, self._clock().date(), cycle_days=self._cycle_days
        )
        usage = self._repository.sum_generations(user_id, start=cycle.start, end=cycle.end)
        limit = get_plan_limit(entitlement.plan_key)
        evaluation = evaluate_generation_quota(usage=usage, quota=limit)
        logger.debug("Generation quota for user %s: %s", user_id, evaluation.to_dict())
        return GenerationPermission(
            can_generate=evaluation.allowed,
            current_usage=evaluation.current_usage,
            limit=limit,
            remaining=evaluation.remaining,
            is_paid=entitlement.is_paid,
            plan_key=entitlement.plan_key,
            billing_cycle_start=cycle.start,
            billing_cycle_end=cycle.end,
        )
