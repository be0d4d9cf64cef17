from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.models.billing import Subscription, WebhookEvent
from app.models.user import User
from app.services.audit import audit_logs
from app.services.common import apply_pagination, coerce_uuid, parse_timestamp
from app.services.permissions import Permission, PermissionGate, permission_gate

logger = logging.getLogger(__name__)


def subscription_fields_from_polar(data: dict[str, Any]) -> dict[str, Any]:
    """Map a provider subscription payload onto local column values."""
    customer = data.get("customer") or {}
    metadata = data.get("metadata") or {}
    return {
        "polar_id": data["id"],
        "polar_price_id": data.get("price_id"),
        "polar_product_id": data.get("product_id"),
        "currency": data.get("currency"),
        "interval": data.get("recurring_interval"),
        "status": data.get("status"),
        "current_period_start": parse_timestamp(data.get("current_period_start")),
        "current_period_end": parse_timestamp(data.get("current_period_end")),
        "cancel_at_period_end": data.get("cancel_at_period_end"),
        "amount": data.get("amount"),
        "started_at": parse_timestamp(data.get("started_at")),
        "ended_at": parse_timestamp(data.get("ended_at")),
        "canceled_at": parse_timestamp(data.get("canceled_at")),
        "customer_cancellation_reason": data.get("customer_cancellation_reason")
        or None,
        "customer_cancellation_comment": data.get("customer_cancellation_comment")
        or None,
        "customer_id": data.get("customer_id") or customer.get("id"),
        "customer_email": customer.get("email")
        or data.get("customer_email")
        or data.get("email"),
        "metadata_": metadata,
        "custom_field_data": data.get("custom_field_data") or {},
        "user_id": metadata.get("userId") or None,
        "provider_modified_at": parse_timestamp(
            data.get("modified_at") or data.get("created_at")
        ),
    }


def _user_summary(user: User | None) -> dict[str, Any] | None:
    if user is None:
        return None
    return {
        "token_identifier": user.token_identifier,
        "name": user.name,
        "email": user.email,
        "image": user.image,
    }


class Subscriptions:
    def __init__(self, gate: PermissionGate | None = None) -> None:
        self.gate = gate or permission_gate

    @staticmethod
    def get_by_polar_id(db: Session, polar_id: str) -> Subscription | None:
        stmt = select(Subscription).where(Subscription.polar_id == polar_id).limit(1)
        return db.scalars(stmt).first()

    @staticmethod
    def _get_or_404(db: Session, subscription_id: str) -> Subscription:
        item = db.get(Subscription, coerce_uuid(subscription_id))
        if not item:
            raise HTTPException(status_code=404, detail="Subscription not found")
        return item

    @staticmethod
    def _search_clause(term: str, *extra: Any):
        pattern = f"%{term.lower()}%"
        return or_(
            func.lower(User.name).like(pattern),
            func.lower(User.email).like(pattern),
            func.lower(Subscription.customer_id).like(pattern),
            func.lower(Subscription.polar_id).like(pattern),
            *[func.lower(column).like(pattern) for column in extra],
        )

    def list(
        self,
        db: Session,
        admin_id: str,
        search: str | None = None,
        status: str | None = None,
        interval: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict[str, Any]:
        self.gate.require_admin_permission(db, admin_id, Permission.view_subscriptions)
        stmt = select(Subscription, User).outerjoin(
            User, User.token_identifier == Subscription.user_id
        )
        if status:
            stmt = stmt.where(Subscription.status == status)
        if interval:
            stmt = stmt.where(Subscription.interval == interval)
        if search:
            stmt = stmt.where(self._search_clause(search))
        total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        stmt = stmt.order_by(
            Subscription.started_at.desc().nulls_last(), Subscription.created_at.desc()
        )
        rows = db.execute(apply_pagination(stmt, limit, offset)).all()
        items = []
        for subscription, user in rows:
            items.append(
                {**_subscription_dict(subscription), "user": _user_summary(user)}
            )
        return {"items": items, "total": total, "has_more": offset + limit < total}

    def search(
        self, db: Session, admin_id: str, term: str, limit: int = 20
    ) -> list[dict[str, Any]]:
        self.gate.require_admin_permission(db, admin_id, Permission.view_subscriptions)
        stmt = (
            select(Subscription, User)
            .outerjoin(User, User.token_identifier == Subscription.user_id)
            .where(
                self._search_clause(term, Subscription.status, Subscription.interval)
            )
            .limit(limit)
        )
        return [
            {**_subscription_dict(subscription), "user": _user_summary(user)}
            for subscription, user in db.execute(stmt).all()
        ]

    def get_detail(
        self, db: Session, admin_id: str, subscription_id: str
    ) -> dict[str, Any]:
        self.gate.require_admin_permission(db, admin_id, Permission.view_subscriptions)
        subscription = self._get_or_404(db, subscription_id)
        user = None
        if subscription.user_id:
            user = db.scalars(
                select(User).where(User.token_identifier == subscription.user_id)
            ).first()
        events = db.scalars(
            select(WebhookEvent)
            .where(WebhookEvent.polar_event_id == subscription.polar_id)
            .order_by(WebhookEvent.received_at.desc())
            .limit(10)
        ).all()
        return {
            "subscription": subscription,
            "user": _user_summary(user),
            "webhook_events": list(events),
        }

    def cancel(
        self,
        db: Session,
        admin_id: str,
        subscription_id: str,
        reason: str | None = None,
    ) -> Subscription:
        """Mark a subscription canceled locally on behalf of an admin."""
        self.gate.require_admin_permission(
            db, admin_id, Permission.manage_subscriptions
        )
        subscription = self._get_or_404(db, subscription_id)
        if subscription.status == "canceled":
            raise HTTPException(
                status_code=400, detail="Subscription is already canceled"
            )
        subscription.status = "canceled"
        subscription.canceled_at = datetime.now(UTC)
        subscription.customer_cancellation_reason = "admin_canceled"
        subscription.customer_cancellation_comment = reason
        audit_logs.log_action(
            db,
            admin_id=admin_id,
            action="cancel_subscription",
            target="subscription",
            target_id=subscription.polar_id or str(subscription.id),
            details={
                "reason": reason,
                "user_id": subscription.user_id,
                "amount": subscription.amount,
                "interval": subscription.interval,
            },
            commit=False,
        )
        db.commit()
        db.refresh(subscription)
        logger.info(
            "Canceled Subscription: %s",
            subscription.id,
            extra={"admin_id": admin_id, "polar_id": subscription.polar_id},
        )
        return subscription

    @staticmethod
    def user_has_active_subscription(db: Session, user_id: str) -> bool:
        stmt = select(Subscription).where(Subscription.user_id == user_id).limit(1)
        subscription = db.scalars(stmt).first()
        return subscription is not None and subscription.status == "active"


def _subscription_dict(subscription: Subscription) -> dict[str, Any]:
    return {
        attr.key: getattr(subscription, attr.key)
        for attr in Subscription.__mapper__.column_attrs
    }


subscriptions = Subscriptions()
