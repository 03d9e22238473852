"""Persistence layer for the webhook event log and user entitlements."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from typing import Iterable, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn
from ..entitlements.models import EntitlementUpdate, PlanKey, UserEntitlement
from .models import ProcessedEventRecord

logger = logging.getLogger(__name__)


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _row_to_entitlement(row: dict) -> UserEntitlement:
    plan_key = PlanKey.parse(row.get("plan_type")) or PlanKey.FREE
    is_paid = bool(row.get("is_paid"))
    if is_paid and plan_key == PlanKey.FREE:
        logger.warning("user_meta row for %s is paid on the free plan", row["user_id"])
        is_paid = False
    return UserEntitlement(
        user_id=str(row["user_id"]),
        is_paid=is_paid,
        plan_key=plan_key,
        paid_at=row.get("paid_at"),
        updated_at=row["updated_at"],
    )


def _row_to_processed_event(row: dict) -> ProcessedEventRecord:
    return ProcessedEventRecord(
        event_id=row["event_id"],
        event_type=row["event_type"],
        user_id=row.get("user_id"),
        plan_key=PlanKey.parse(row.get("plan_type")),
        provider_customer_id=row.get("creem_customer_id"),
        provider_order_id=row.get("creem_order_id"),
        amount=row.get("amount"),
        currency=row.get("currency") or "usd",
        metadata=row.get("metadata") or {},
        processed_at=row["processed_at"],
    )


class PostgresBillingRepository:
    """Concrete repository persisting billing state in PostgreSQL."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()

    def get_processed_event(self, event_id: str) -> Optional[ProcessedEventRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM payment_events
                WHERE event_id = %s
                LIMIT 1
                """,
                (event_id,),
            )
            row = cursor.fetchone()
            return _row_to_processed_event(row) if row else None

    def record_processed_event(self, record: ProcessedEventRecord) -> bool:
        """Insert an event log row; ``False`` when the event id already exists."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO payment_events (
                    event_id,
                    event_type,
                    user_id,
                    plan_type,
                    creem_customer_id,
                    creem_order_id,
                    amount,
                    currency,
                    metadata,
                    processed_at
                )
                VALUES (%(event_id)s, %(event_type)s, %(user_id)s, %(plan_type)s,
                        %(creem_customer_id)s, %(creem_order_id)s, %(amount)s,
                        %(currency)s, %(metadata)s, %(processed_at)s)
                ON CONFLICT (event_id) DO NOTHING
                """,
                {
                    "event_id": record.event_id,
                    "event_type": record.event_type,
                    "user_id": record.user_id,
                    "plan_type": record.plan_key.value if record.plan_key else None,
                    "creem_customer_id": record.provider_customer_id,
                    "creem_order_id": record.provider_order_id,
                    "amount": record.amount,
                    "currency": record.currency,
                    "metadata": psycopg2.extras.Json(record.metadata),
                    "processed_at": record.processed_at,
                },
            )
            return cursor.rowcount > 0

    def find_user_by_order_id(self, order_id: str) -> Optional[str]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT user_id
                FROM payment_events
                WHERE creem_order_id = %s AND user_id IS NOT NULL
                ORDER BY processed_at DESC
                LIMIT 1
                """,
                (order_id,),
            )
            row = cursor.fetchone()
            return str(row["user_id"]) if row else None

    def get_user_entitlement(self, user_id: str) -> Optional[UserEntitlement]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT user_id, is_paid, plan_type, paid_at, updated_at
                FROM user_meta
                WHERE user_id = %s
                LIMIT 1
                """,
                (user_id,),
            )
            row = cursor.fetchone()
            return _row_to_entitlement(row) if row else None

    def apply_entitlement_update(
        self, user_id: str, update: EntitlementUpdate
    ) -> Optional[UserEntitlement]:
        """Apply ``update`` to the user's row; ``None`` when no row exists."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE user_meta
                SET is_paid = %(is_paid)s,
                    plan_type = COALESCE(%(plan_type)s, plan_type),
                    paid_at = CASE WHEN %(set_paid_at)s THEN %(updated_at)s ELSE paid_at END,
                    updated_at = %(updated_at)s
                WHERE user_id = %(user_id)s
                RETURNING user_id, is_paid, plan_type, paid_at, updated_at
                """,
                {
                    "user_id": user_id,
                    "is_paid": update.is_paid,
                    "plan_type": update.plan_key.value if update.plan_key else None,
                    "set_paid_at": update.set_paid_at,
                    "updated_at": update.updated_at,
                },
            )
            row = cursor.fetchone()
            return _row_to_entitlement(row) if row else None

    def sum_generations(self, user_id: str, *, start: date, end: date) -> int:
        """Total generations for ``user_id`` on days in ``[start, end)``."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT COALESCE(SUM(generation_count), 0) AS total
                FROM user_usage
                WHERE user_id = %s AND date >= %s AND date < %s
                """,
                (user_id, start, end),
            )
            row = cursor.fetchone()
            return int(row["total"]) if row else 0


__all__ = ["PostgresBillingRepository", "managed_connection"]
