"""Unit tests for the generation permission service."""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from kidart.app.entitlements.models import PlanKey, UserEntitlement
from kidart.app.entitlements.service import EntitlementRepository, EntitlementService, billing_cycle_for


TODAY = datetime(2025, 3, 10, 9, 30, tzinfo=timezone.utc)


class InMemoryEntitlementRepository(EntitlementRepository):
    def __init__(self) -> None:
        self.entitlements: Dict[str, UserEntitlement] = {}
        self.usage: Dict[Tuple[str, date], int] = {}
        self.queries: List[Tuple[str, date, date]] = []

    def get_user_entitlement(self, user_id: str) -> Optional[UserEntitlement]:
        return self.entitlements.get(user_id)

    def sum_generations(self, user_id: str, *, start: date, end: date) -> int:
        self.queries.append((user_id, start, end))
        return sum(
            count
            for (owner, day), count in self.usage.items()
            if owner == user_id and start <= day < end
        )


@pytest.fixture
def entitlement_components():
    repository = InMemoryEntitlementRepository()
    service = EntitlementService(repository, clock=lambda: TODAY)
    return repository, service


def test_billing_cycle_anchors_on_paid_at():
    entitlement = UserEntitlement(
        user_id="u1",
        is_paid=True,
        plan_key=PlanKey.STARTER_MONTHLY,
        paid_at=datetime(2025, 1, 1, 15, 0, tzinfo=timezone.utc),
    )

    cycle = billing_cycle_for(entitlement, date(2025, 3, 10))

    assert cycle.start == date(2025, 3, 2)
    assert cycle.end == date(2025, 4, 1)


def test_billing_cycle_without_payment_uses_calendar_month():
    cycle = billing_cycle_for(UserEntitlement(user_id="u1"), date(2025, 3, 10))

    assert cycle.start == date(2025, 3, 1)
    assert cycle.end == date(2025, 3, 31)


def test_billing_cycle_respects_custom_length():
    entitlement = UserEntitlement(
        user_id="u1",
        is_paid=True,
        plan_key=PlanKey.CREATOR_YEARLY,
        paid_at=datetime(2025, 3, 1, tzinfo=timezone.utc),
    )

    cycle = billing_cycle_for(entitlement, date(2025, 3, 10), cycle_days=7)

    assert cycle.start == date(2025, 3, 8)
    assert cycle.end == date(2025, 3, 15)


def test_unknown_user_defaults_to_free_and_cannot_generate(entitlement_components):
    _, service = entitlement_components

    permission = service.check_generation_permission("nobody")

    assert permission.can_generate is False
    assert permission.limit == 0
    assert permission.remaining == 0
    assert permission.is_paid is False
    assert permission.plan_key == PlanKey.FREE


def test_paid_user_usage_counts_only_current_cycle(entitlement_components):
    repository, service = entitlement_components
    repository.entitlements["u1"] = UserEntitlement(
        user_id="u1",
        is_paid=True,
        plan_key=PlanKey.STARTER_MONTHLY,
        paid_at=datetime(2025, 2, 20, tzinfo=timezone.utc),
    )
    repository.usage[("u1", date(2025, 2, 19))] = 40
    repository.usage[("u1", date(2025, 2, 20))] = 12
    repository.usage[("u1", date(2025, 3, 9))] = 8

    permission = service.check_generation_permission("u1")

    assert repository.queries == [("u1", date(2025, 2, 20), date(2025, 3, 22))]
    assert permission.current_usage == 20
    assert permission.limit == 50
    assert permission.remaining == 30
    assert permission.can_generate is True
    assert permission.is_paid is True


def test_exhausted_quota_blocks_generation(entitlement_components):
    repository, service = entitlement_components
    repository.entitlements["u1"] = UserEntitlement(
        user_id="u1",
        is_paid=True,
        plan_key=PlanKey.STARTER_YEARLY,
        paid_at=datetime(2025, 3, 1, tzinfo=timezone.utc),
    )
    repository.usage[("u1", date(2025, 3, 5))] = 50

    permission = service.check_generation_permission("u1")

    assert permission.can_generate is False
    assert permission.remaining == 0


def test_permission_serializes_with_camel_case_keys(entitlement_components):
    repository, service = entitlement_components
    repository.entitlements["u1"] = UserEntitlement(
        user_id="u1",
        is_paid=True,
        plan_key=PlanKey.EXPLORER_MONTHLY,
        paid_at=datetime(2025, 3, 1, tzinfo=timezone.utc),
    )

    payload = service.check_generation_permission("u1").model_dump(by_alias=True, mode="json")

    assert payload == {
        "canGenerate": True,
        "currentUsage": 0,
        "limit": 200,
        "remaining": 200,
        "isPaid": True,
        "planType": "explorer_monthly",
        "billingCycleStart": "2025-03-01",
        "billingCycleEnd": "2025-03-31",
    }


def test_paid_entitlement_on_free_plan_is_rejected():
    with pytest.raises(ValueError):
        UserEntitlement(user_id="u1", is_paid=True, plan_key=PlanKey.FREE)
