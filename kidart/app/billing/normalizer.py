"""Parse raw webhook bodies into canonical events and extract correlation fields.

Provider payloads are not self-describing: the same field can live at
different paths depending on the event type and on which provider code path
produced the event. Each field therefore has an ordered tuple of extraction
rules; the first rule yielding a non-empty value wins. New payload shapes are
supported by adding a rule, not by touching control flow.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

from ..entitlements.models import PlanKey
from .exceptions import MalformedEventError
from .models import EventFields, IncomingEvent, WebhookEventType

Subject = Mapping[str, Any]
Rule = Callable[[Subject], Optional[Any]]


def _walk(subject: Subject, keys: Sequence[str]) -> Optional[Any]:
    value: Any = subject
    for key in keys:
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def _clean_str(value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def string_at(*keys: str) -> Rule:
    """Rule: the non-empty string found at ``keys``."""

    def rule(subject: Subject) -> Optional[str]:
        return _clean_str(_walk(subject, keys))

    rule.__name__ = "string_at_" + "_".join(keys)
    return rule


def id_at(*keys: str) -> Rule:
    """Rule: a string at ``keys``, or the ``id`` of an object found there."""

    def rule(subject: Subject) -> Optional[str]:
        value = _walk(subject, keys)
        if isinstance(value, Mapping):
            return _clean_str(value.get("id"))
        return _clean_str(value)

    rule.__name__ = "id_at_" + "_".join(keys)
    return rule


def object_id_at(*keys: str) -> Rule:
    """Rule: only the ``id`` of an object found at ``keys``."""

    def rule(subject: Subject) -> Optional[str]:
        value = _walk(subject, keys)
        if isinstance(value, Mapping):
            return _clean_str(value.get("id"))
        return None

    rule.__name__ = "object_id_at_" + "_".join(keys)
    return rule


def int_at(*keys: str) -> Rule:
    def rule(subject: Subject) -> Optional[int]:
        value = _walk(subject, keys)
        if isinstance(value, bool) or value is None:
            return None
        if isinstance(value, float) and not value.is_integer():
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    rule.__name__ = "int_at_" + "_".join(keys)
    return rule


def first_present(rules: Sequence[Rule], subject: Subject) -> Optional[Any]:
    """Apply ``rules`` in order and return the first non-empty value."""

    for rule in rules:
        value = rule(subject)
        if value is not None and value != "":
            return value
    return None


USER_ID_RULES: Tuple[Rule, ...] = (
    string_at("metadata", "internal_user_id"),
    string_at("subscription", "metadata", "internal_user_id"),
    string_at("metadata", "user_id"),
)

REFUND_USER_ID_RULES: Tuple[Rule, ...] = (
    string_at("metadata", "internal_user_id"),
    string_at("checkout", "metadata", "internal_user_id"),
    string_at("subscription", "metadata", "internal_user_id"),
    string_at("metadata", "user_id"),
)

CHECKOUT_PRODUCT_RULES: Tuple[Rule, ...] = (
    id_at("order", "product"),
    object_id_at("product"),
    string_at("metadata", "product_id"),
    string_at("product"),
)

SUBSCRIPTION_PRODUCT_RULES: Tuple[Rule, ...] = (
    string_at("product"),
    object_id_at("product"),
    string_at("metadata", "product_id"),
)

CHECKOUT_ORDER_RULES: Tuple[Rule, ...] = (
    object_id_at("order"),
    string_at("id"),
)

ORDER_RULES: Tuple[Rule, ...] = (
    id_at("order"),
    string_at("order_id"),
)

CUSTOMER_RULES: Tuple[Rule, ...] = (
    id_at("order", "customer"),
    id_at("customer"),
)

AMOUNT_RULES: Tuple[Rule, ...] = (
    int_at("refund_amount"),
    int_at("order", "amount"),
    int_at("amount"),
)

PLAN_HINT_RULES: Tuple[Rule, ...] = (
    string_at("metadata", "plan_type"),
)


def _user_rules(event_type: Optional[WebhookEventType]) -> Tuple[Rule, ...]:
    if event_type == WebhookEventType.REFUND_CREATED:
        return REFUND_USER_ID_RULES
    return USER_ID_RULES


def _product_rules(event_type: Optional[WebhookEventType]) -> Tuple[Rule, ...]:
    if event_type == WebhookEventType.CHECKOUT_COMPLETED:
        return CHECKOUT_PRODUCT_RULES
    if event_type is not None and event_type.is_subscription_event:
        return SUBSCRIPTION_PRODUCT_RULES
    return ()


def _order_rules(event_type: Optional[WebhookEventType]) -> Tuple[Rule, ...]:
    if event_type == WebhookEventType.CHECKOUT_COMPLETED:
        return CHECKOUT_ORDER_RULES
    return ORDER_RULES


def _parse_created_at(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # The provider sends epoch milliseconds; tolerate seconds as well.
        seconds = value / 1000 if value > 10_000_000_000 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def normalize_event(raw: Union[bytes, str, Mapping[str, Any]]) -> IncomingEvent:
    """Parse a provider webhook body into an :class:`IncomingEvent`.

    Unknown event types are accepted. Raises :class:`MalformedEventError` when
    the body is not a JSON object or lacks an event id or type.
    """

    if isinstance(raw, Mapping):
        payload: Any = raw
    else:
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise MalformedEventError("Request body is not valid JSON") from exc

    if not isinstance(payload, Mapping):
        raise MalformedEventError("Webhook payload must be a JSON object")

    event_id = _clean_str(payload.get("id"))
    event_type = _clean_str(payload.get("eventType") or payload.get("event_type"))
    if not event_id or not event_type:
        raise MalformedEventError("Missing required fields: id, eventType")

    subject = payload.get("object")
    return IncomingEvent(
        id=event_id,
        event_type=event_type,
        created_at=_parse_created_at(payload.get("created_at")),
        subject=dict(subject) if isinstance(subject, Mapping) else {},
    )


def extract_fields(event: IncomingEvent) -> EventFields:
    """Extract user, product, order, customer and amount fields from ``event``."""

    event_type = event.known_type
    subject: Dict[str, Any] = event.subject

    plan_hint = PlanKey.parse(first_present(PLAN_HINT_RULES, subject))
    if plan_hint == PlanKey.FREE:
        plan_hint = None

    return EventFields(
        user_id=first_present(_user_rules(event_type), subject),
        product_id=first_present(_product_rules(event_type), subject),
        plan_hint=plan_hint,
        order_id=first_present(_order_rules(event_type), subject),
        customer_id=first_present(CUSTOMER_RULES, subject),
        amount=first_present(AMOUNT_RULES, subject),
    )


__all__ = [
    "AMOUNT_RULES",
    "CHECKOUT_PRODUCT_RULES",
    "REFUND_USER_ID_RULES",
    "SUBSCRIPTION_PRODUCT_RULES",
    "USER_ID_RULES",
    "extract_fields",
    "first_present",
    "normalize_event",
]
