"""Exceptions raised by the billing webhook pipeline."""
from __future__ import annotations


class BillingError(Exception):
    """Base class for billing webhook failures."""


class MalformedEventError(BillingError, ValueError):
    """Raised when a webhook body cannot be parsed into an event envelope."""


class WebhookConfigurationError(BillingError, RuntimeError):
    """Raised when the server lacks configuration required to verify webhooks."""
