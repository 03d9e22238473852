"""Billing configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional
import os

from .billing.exceptions import WebhookConfigurationError
from .entitlements.models import PlanKey

_PRODUCT_ENV_KEYS: Dict[PlanKey, str] = {
    PlanKey.STARTER_MONTHLY: "CREEM_PID_STARTER_MONTHLY",
    PlanKey.STARTER_YEARLY: "CREEM_PID_STARTER_YEARLY",
    PlanKey.EXPLORER_MONTHLY: "CREEM_PID_EXPLORER_MONTHLY",
    PlanKey.EXPLORER_YEARLY: "CREEM_PID_EXPLORER_YEARLY",
    PlanKey.CREATOR_MONTHLY: "CREEM_PID_CREATOR_MONTHLY",
    PlanKey.CREATOR_YEARLY: "CREEM_PID_CREATOR_YEARLY",
}


@dataclass(frozen=True)
class BillingConfig:
    """Configuration for inbound billing webhooks and plan mapping."""

    webhook_secret: Optional[str]
    signature_header: str = "creem-signature"
    product_ids: Mapping[PlanKey, str] = field(default_factory=dict)
    billing_cycle_days: int = 30

    @property
    def webhook_configured(self) -> bool:
        return bool(self.webhook_secret)

    def require_webhook_secret(self) -> str:
        if not self.webhook_secret:
            raise WebhookConfigurationError("CREEM_WEBHOOK_SECRET is not configured")
        return self.webhook_secret


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def load_billing_config(env: Optional[Mapping[str, str]] = None) -> BillingConfig:
    """Load :class:`BillingConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    webhook_secret = (env_mapping.get("CREEM_WEBHOOK_SECRET") or "").strip() or None
    signature_header = (
        env_mapping.get("CREEM_SIGNATURE_HEADER") or "creem-signature"
    ).strip().lower()

    product_ids: Dict[PlanKey, str] = {}
    for plan_key, env_key in _PRODUCT_ENV_KEYS.items():
        product_id = (env_mapping.get(env_key) or "").strip()
        if product_id:
            product_ids[plan_key] = product_id

    billing_cycle_days = max(1, _to_int(env_mapping.get("BILLING_CYCLE_DAYS"), default=30))

    return BillingConfig(
        webhook_secret=webhook_secret,
        signature_header=signature_header,
        product_ids=product_ids,
        billing_cycle_days=billing_cycle_days,
    )


__all__ = ["BillingConfig", "load_billing_config"]
