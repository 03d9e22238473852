"""Application wiring for the billing webhook and entitlement services."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..billing import BillingWebhookService
from ..billing.repository import PostgresBillingRepository
from ..config import BillingConfig, load_billing_config
from ..entitlements import EntitlementService, PlanResolver


logger = logging.getLogger("billing")


@lru_cache(maxsize=1)
def get_billing_config() -> BillingConfig:
    config = load_billing_config()
    if not config.webhook_configured:
        logger.error("CREEM_WEBHOOK_SECRET is not set; webhooks will be rejected")
    if not config.product_ids:
        logger.warning("No CREEM_PID_* product ids configured; no plan can be resolved")
    return config


@lru_cache(maxsize=1)
def get_billing_repository() -> PostgresBillingRepository:
    return PostgresBillingRepository()


@lru_cache(maxsize=1)
def get_webhook_service() -> BillingWebhookService:
    config = get_billing_config()
    resolver = PlanResolver(config.product_ids)
    logger.info(
        "Billing products configured: %s",
        {product_id: plan_key.value for product_id, plan_key in resolver.product_ids.items()},
    )
    return BillingWebhookService(
        repository=get_billing_repository(),
        plan_resolver=resolver,
    )


@lru_cache(maxsize=1)
def get_entitlement_service() -> EntitlementService:
    config = get_billing_config()
    return EntitlementService(get_billing_repository(), cycle_days=config.billing_cycle_days)


__all__ = [
    "get_billing_config",
    "get_billing_repository",
    "get_entitlement_service",
    "get_webhook_service",
]
