"""Domain models for plan tiers and user entitlements."""
from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PlanKey(str, Enum):
    """Canonical identifiers for subscription plan tiers."""

    FREE = "free"
    STARTER_MONTHLY = "starter_monthly"
    STARTER_YEARLY = "starter_yearly"
    EXPLORER_MONTHLY = "explorer_monthly"
    EXPLORER_YEARLY = "explorer_yearly"
    CREATOR_MONTHLY = "creator_monthly"
    CREATOR_YEARLY = "creator_yearly"

    @classmethod
    def parse(cls, value: object) -> Optional["PlanKey"]:
        """Return the matching plan key, or ``None`` for unknown values."""

        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip())
        except ValueError:
            return None


class BillingInterval(str, Enum):
    """Supported billing frequencies."""

    MONTH = "month"
    YEAR = "year"


class UserEntitlement(BaseModel):
    """Stored entitlement state for a single user (one ``user_meta`` row)."""

    user_id: str
    is_paid: bool = False
    plan_key: PlanKey = PlanKey.FREE
    paid_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @model_validator(mode="after")
    def _paid_requires_plan(self) -> "UserEntitlement":
        if self.is_paid and self.plan_key == PlanKey.FREE:
            raise ValueError("paid entitlements must carry a non-free plan")
        return self


class EntitlementUpdate(BaseModel):
    """Partial mutation applied to a user's entitlement row.

    ``plan_key`` of ``None`` leaves the stored plan untouched. ``set_paid_at``
    stamps ``paid_at`` with ``updated_at``; otherwise ``paid_at`` is preserved.
    """

    is_paid: bool
    plan_key: Optional[PlanKey] = None
    set_paid_at: bool = False
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _paid_requires_plan(self) -> "EntitlementUpdate":
        if self.is_paid and self.plan_key == PlanKey.FREE:
            raise ValueError("cannot mark a user paid on the free plan")
        return self

    def apply_to(self, current: UserEntitlement) -> UserEntitlement:
        """Return the entitlement that results from applying this update."""

        plan_key = self.plan_key if self.plan_key is not None else current.plan_key
        return UserEntitlement(
            user_id=current.user_id,
            is_paid=self.is_paid,
            plan_key=plan_key,
            paid_at=self.updated_at if self.set_paid_at else current.paid_at,
            updated_at=self.updated_at,
        )


class BillingCycle(BaseModel):
    """Usage accounting window for a user."""

    start: date
    end: date

    model_config = ConfigDict(frozen=True)


class GenerationPermission(BaseModel):
    """Result of checking whether a user may run another generation."""

    can_generate: bool = Field(alias="canGenerate")
    current_usage: int = Field(alias="currentUsage", ge=0)
    limit: int = Field(ge=0)
    remaining: int = Field(ge=0)
    is_paid: bool = Field(alias="isPaid")
    plan_key: PlanKey = Field(alias="planType")
    billing_cycle_start: date = Field(alias="billingCycleStart")
    billing_cycle_end: date = Field(alias="billingCycleEnd")

    model_config = ConfigDict(populate_by_name=True, frozen=True)
