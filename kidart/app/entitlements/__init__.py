"""Entitlements domain models and services."""

from .catalog import (
    PLAN_CATALOG,
    PlanDefinition,
    PlanResolver,
    can_use_transform,
    format_price,
    get_paid_plans,
    get_plan_definition,
    get_plan_limit,
)
from .models import (
    BillingCycle,
    BillingInterval,
    EntitlementUpdate,
    GenerationPermission,
    PlanKey,
    UserEntitlement,
)
from .service import EntitlementRepository, EntitlementService, billing_cycle_for

__all__ = [
    "PLAN_CATALOG",
    "PlanDefinition",
    "PlanResolver",
    "can_use_transform",
    "format_price",
    "get_paid_plans",
    "get_plan_definition",
    "get_plan_limit",
    "BillingCycle",
    "BillingInterval",
    "EntitlementUpdate",
    "GenerationPermission",
    "PlanKey",
    "UserEntitlement",
    "EntitlementRepository",
    "EntitlementService",
    "billing_cycle_for",
]
