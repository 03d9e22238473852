"""Static catalog definitions for plan tiers and the product id resolver."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional

from .models import BillingInterval, PlanKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanDefinition:
    """Describes a plan tier and the generation quota it grants."""

    key: PlanKey
    display_name: str
    monthly_quota: int
    price_cents: int
    billing_interval: BillingInterval
    currency: str = "usd"
    product_id: str = ""
    popular: bool = False

    @property
    def is_paid(self) -> bool:
        return self.key != PlanKey.FREE

    def monthly_price_cents(self) -> float:
        """Return the effective monthly price, spreading yearly plans over 12 months."""

        if self.billing_interval == BillingInterval.YEAR:
            return self.price_cents / 12
        return float(self.price_cents)


PLAN_CATALOG: Dict[PlanKey, PlanDefinition] = {
    PlanKey.FREE: PlanDefinition(
        key=PlanKey.FREE,
        display_name="Free",
        monthly_quota=0,
        price_cents=0,
        billing_interval=BillingInterval.MONTH,
    ),
    PlanKey.STARTER_MONTHLY: PlanDefinition(
        key=PlanKey.STARTER_MONTHLY,
        display_name="Starter Monthly",
        monthly_quota=50,
        price_cents=799,
        billing_interval=BillingInterval.MONTH,
    ),
    PlanKey.STARTER_YEARLY: PlanDefinition(
        key=PlanKey.STARTER_YEARLY,
        display_name="Starter Yearly",
        monthly_quota=50,
        price_cents=5900,
        billing_interval=BillingInterval.YEAR,
        popular=True,
    ),
    PlanKey.EXPLORER_MONTHLY: PlanDefinition(
        key=PlanKey.EXPLORER_MONTHLY,
        display_name="Explorer Monthly",
        monthly_quota=200,
        price_cents=1499,
        billing_interval=BillingInterval.MONTH,
    ),
    PlanKey.EXPLORER_YEARLY: PlanDefinition(
        key=PlanKey.EXPLORER_YEARLY,
        display_name="Explorer Yearly",
        monthly_quota=200,
        price_cents=9900,
        billing_interval=BillingInterval.YEAR,
    ),
    PlanKey.CREATOR_MONTHLY: PlanDefinition(
        key=PlanKey.CREATOR_MONTHLY,
        display_name="Creator Monthly",
        monthly_quota=500,
        price_cents=3000,
        billing_interval=BillingInterval.MONTH,
    ),
    PlanKey.CREATOR_YEARLY: PlanDefinition(
        key=PlanKey.CREATOR_YEARLY,
        display_name="Creator Yearly",
        monthly_quota=500,
        price_cents=19900,
        billing_interval=BillingInterval.YEAR,
    ),
}


def get_plan_definition(plan_key: PlanKey) -> PlanDefinition:
    """Return a plan definition, raising if unsupported."""

    try:
        return PLAN_CATALOG[plan_key]
    except KeyError as exc:  # pragma: no cover - guarded by static catalog
        raise KeyError(f"Unknown plan key: {plan_key}") from exc


def get_plan_limit(plan_key: PlanKey) -> int:
    return get_plan_definition(plan_key).monthly_quota


def can_use_transform(plan_key: PlanKey) -> bool:
    """Return whether a plan allows any generations at all."""

    return plan_key != PlanKey.FREE and get_plan_limit(plan_key) > 0


def get_paid_plans() -> List[PlanDefinition]:
    """Return every purchasable plan in catalog order."""

    return [definition for definition in PLAN_CATALOG.values() if definition.is_paid]


def format_price(price_cents: float, currency: str = "usd") -> str:
    """Format a price in cents, dropping the fraction for whole amounts."""

    amount = price_cents / 100
    symbol = "$" if currency.lower() == "usd" else f"{currency.upper()} "
    if price_cents % 100 == 0:
        return f"{symbol}{amount:,.0f}"
    return f"{symbol}{amount:,.2f}"


class PlanResolver:
    """Maps opaque provider product ids to plan tiers.

    The free tier has no product id and can never be resolved here.
    """

    def __init__(self, product_ids: Mapping[PlanKey, str]) -> None:
        self._by_product: Dict[str, PlanDefinition] = {}
        for plan_key, product_id in product_ids.items():
            if plan_key == PlanKey.FREE or not product_id:
                continue
            self._by_product[product_id] = replace(
                get_plan_definition(plan_key), product_id=product_id
            )

    def resolve(self, product_id: Optional[str]) -> Optional[PlanDefinition]:
        """Return the plan for ``product_id`` or ``None`` when it is unknown."""

        if not product_id:
            return None
        definition = self._by_product.get(product_id)
        if definition is None:
            logger.warning(
                "Unknown product id %s; configured products=%s",
                product_id,
                sorted(self._by_product),
            )
        return definition

    @property
    def product_ids(self) -> Dict[str, PlanKey]:
        return {product_id: definition.key for product_id, definition in self._by_product.items()}
